"""
Receipt Mailer

Turns a payers spreadsheet into personalized PDF payment receipts with
payment QR codes and e-mails each receipt to its payer, reporting partial
failures without losing the work that succeeded.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .cancellation import CancellationToken
from .errors import (
    CompositeError,
    DeliveryFailedError,
    ErrorKind,
    MissingMappingError,
    ReceiptMailerError,
)
from .models import (
    Beneficiary,
    DeliveryJob,
    DeliveryOutcome,
    OrganizationProfile,
    RecipientMapping,
    SenderSettings,
)
from .pipeline import BatchOutcome, BatchPipeline, BatchResult

__all__ = [
    '__version__',
    # Pipeline
    'BatchPipeline',
    'BatchResult',
    'BatchOutcome',
    'CancellationToken',
    # Models
    'Beneficiary',
    'OrganizationProfile',
    'RecipientMapping',
    'SenderSettings',
    'DeliveryJob',
    'DeliveryOutcome',
    # Errors
    'ReceiptMailerError',
    'ErrorKind',
    'MissingMappingError',
    'DeliveryFailedError',
    'CompositeError',
]
