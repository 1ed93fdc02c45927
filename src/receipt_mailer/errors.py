"""
Custom exceptions and error handling for the Receipt Mailer pipeline.

Provides:
- Error kinds (system / user / external) carried by every exception
- Typed exception hierarchy for each fatal pipeline stage
- Partial-failure errors (missing mapping, failed delivery) and the
  composite that bundles them in stage order
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Literal, Mapping


class ErrorKind(str, Enum):
    """Category of an error, used to pick the response shown to the user."""

    # Infrastructure, files, database, network. Not retried by this layer.
    SYSTEM = 'system'
    # Incorrect user input or business-rule violation. Never retried.
    USER = 'user'
    # Third-party service failures (SMTP server, converters).
    EXTERNAL = 'external'


class ReceiptMailerError(Exception):
    """Base exception for all receipt mailer errors."""

    default_kind: ClassVar[ErrorKind] = ErrorKind.SYSTEM

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.kind = kind or self.default_kind

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(ReceiptMailerError):
    """Base class for client-related errors."""

    pass


class TransportError(ClientError):
    """Error delivering a message through the mail transport."""

    default_kind = ErrorKind.EXTERNAL


class TransportConnectionError(TransportError):
    """Failed to connect to the SMTP server."""

    pass


class TransportAuthError(TransportError):
    """SMTP server rejected the sender credentials."""

    pass


class TransportRecipientError(TransportError):
    """SMTP server refused the recipient address."""

    pass


class DatabaseError(ClientError):
    """Error from settings/history database operations."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(ReceiptMailerError):
    """Base class for pipeline-related errors."""

    pass


class ValidationError(PipelineError):
    """Input or precondition validation failed."""

    default_kind = ErrorKind.USER


class OperationCanceledError(PipelineError):
    """The request was canceled before the operation could run."""

    default_kind = ErrorKind.USER


class SettingsError(PipelineError):
    """Sender settings or the recipient mapping could not be loaded."""

    pass


class StorageError(PipelineError):
    """Uploaded source file could not be stored."""

    pass


class ParseError(PipelineError):
    """
    Error parsing the source spreadsheet.

    Raised as USER kind for malformed input (missing sheet, missing
    parameters) and SYSTEM kind when the file cannot be read at all.
    """

    default_kind = ErrorKind.USER


class HistoryError(PipelineError):
    """Processed file could not be recorded in history."""

    pass


class RenderError(PipelineError):
    """Receipt template, payment code or receipt rendering failed."""

    pass


# =============================================================================
# Partial Failures
# =============================================================================


class MissingMappingError(ReceiptMailerError):
    """
    Beneficiaries whose recipient address could not be resolved.

    The receipt was generated for each of them but never queued for delivery.
    Entries map beneficiary name -> receipt path, sorted by name.
    """

    default_kind = ErrorKind.USER
    stage: ClassVar[Literal['email_mapping']] = 'email_mapping'

    def __init__(self, entries: Mapping[str, str]):
        self.entries = dict(sorted(entries.items()))
        listed = ', '.join(f"{name}: {path}" for name, path in self.entries.items())
        super().__init__(f"no emails found for some payers: [{listed}]")

    @property
    def failed_count(self) -> int:
        return len(self.entries)


class DeliveryFailedError(ReceiptMailerError):
    """
    Recipients whose delivery was attempted and failed.

    Entries map recipient address -> failure cause, sorted by address.
    ``attachment_paths`` keeps the receipt of every failed recipient so a
    caller-level retry does not need to re-render it.
    """

    default_kind = ErrorKind.USER
    stage: ClassVar[Literal['send_mails']] = 'send_mails'

    def __init__(
        self,
        entries: Mapping[str, str],
        attachment_paths: Mapping[str, str] | None = None,
    ):
        self.entries = dict(sorted(entries.items()))
        self.attachment_paths = dict(sorted((attachment_paths or {}).items()))
        listed = ', '.join(f"{rcpt}: {cause}" for rcpt, cause in self.entries.items())
        super().__init__(f"errors occurred sending emails: [{listed}]")

    @property
    def failed_count(self) -> int:
        return len(self.entries)


# Closed set of partial failures a batch can report.
PartialFailure = MissingMappingError | DeliveryFailedError


class CompositeError(ReceiptMailerError):
    """
    Ordered bundle of partial failures from one batch.

    Sub-errors keep pipeline order: the mapping error (generation stage)
    always precedes the delivery error (dispatch stage).
    """

    default_kind = ErrorKind.USER

    def __init__(
        self,
        mapping_error: MissingMappingError | None = None,
        delivery_error: DeliveryFailedError | None = None,
    ):
        self.mapping_error = mapping_error
        self.delivery_error = delivery_error
        self.errors: tuple[PartialFailure, ...] = tuple(
            e for e in (mapping_error, delivery_error) if e is not None
        )
        if not self.errors:
            raise ValueError('CompositeError requires at least one sub-error')
        joined = '; '.join(e.message for e in self.errors)
        super().__init__(f"multiple errors: [{joined}]")

    def unwrap(self) -> list[PartialFailure]:
        """Sub-errors in stage order."""
        return list(self.errors)

    def __iter__(self):
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)


# =============================================================================
# Error Inspection Utilities
# =============================================================================


def error_kind(exc: BaseException | None) -> ErrorKind | None:
    """
    Return the kind of the first ReceiptMailerError in the cause chain.

    Walks ``__cause__`` (then ``__context__``) so a foreign exception raised
    from one of ours still resolves to a kind.
    """
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, ReceiptMailerError):
            return exc.kind
        exc = exc.__cause__ or exc.__context__
    return None


def is_user_error(exc: BaseException | None) -> bool:
    return error_kind(exc) == ErrorKind.USER


def is_system_error(exc: BaseException | None) -> bool:
    return error_kind(exc) == ErrorKind.SYSTEM


def wrap_smtp_error(exc: Exception, context: dict[str, Any] | None = None) -> TransportError:
    """
    Wrap an SMTP exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed TransportError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, (ConnectionError, TimeoutError)) or 'connect' in error_str:
        return TransportConnectionError(f"SMTP connection failed: {exc}", context=ctx)
    elif 'auth' in error_str or '535' in error_str:
        return TransportAuthError(f"SMTP authentication failed: {exc}", context=ctx)
    elif 'recipient' in error_str or '550' in error_str:
        return TransportRecipientError(f"SMTP recipient refused: {exc}", context=ctx)
    else:
        return TransportError(f"SMTP error: {exc}", context=ctx)


def wrap_database_error(exc: Exception, context: dict[str, Any] | None = None) -> DatabaseError:
    """Wrap a database exception, keeping the original message in context."""
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__
    return DatabaseError(f"Database error: {exc}", context=ctx)
