"""
Bulk dispatcher for receipt delivery.

Sends every DeliveryJob of a batch concurrently behind a bounded admission
gate, with per-recipient fault isolation.
"""

from .dispatcher import DEFAULT_MAX_PARALLEL, BulkDispatcher, DispatchResult

__all__ = [
    'BulkDispatcher',
    'DispatchResult',
    'DEFAULT_MAX_PARALLEL',
]
