"""
Delivery job and outcome models consumed and produced by the bulk dispatcher.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DeliveryJob:
    """One queued attempt to deliver a receipt to a resolved address."""

    recipient: str
    subject: str
    body: str
    artifact_path: Path | None


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of exactly one delivery job."""

    recipient: str
    succeeded: bool
    cause: str | None = None
    artifact_path: Path | None = None

    @classmethod
    def success(cls, job: DeliveryJob) -> 'DeliveryOutcome':
        return cls(recipient=job.recipient, succeeded=True, artifact_path=job.artifact_path)

    @classmethod
    def failure(cls, job: DeliveryJob, cause: str) -> 'DeliveryOutcome':
        return cls(
            recipient=job.recipient,
            succeeded=False,
            cause=cause,
            artifact_path=job.artifact_path,
        )
