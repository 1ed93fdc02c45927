"""
Data models for the Receipt Mailer pipeline.
"""

from .beneficiary import Beneficiary, OrganizationProfile, normalize_amount
from .delivery import DeliveryJob, DeliveryOutcome
from .settings import HistoryRecord, RecipientMapping, SenderSettings, normalize_name

__all__ = [
    'Beneficiary',
    'OrganizationProfile',
    'normalize_amount',
    'DeliveryJob',
    'DeliveryOutcome',
    'HistoryRecord',
    'RecipientMapping',
    'SenderSettings',
    'normalize_name',
]
