"""
Bounded-concurrency bulk sender for receipt delivery jobs.

Every DeliveryJob becomes one asyncio task. An asyncio.Semaphore of width
``max_parallel`` admits tasks to the transport; the slot is held only for
the delivery call and released on every exit path by ``async with``.

Guarantees:
- each job is attempted at most once (no retries here)
- every task reports exactly one DeliveryOutcome
- one recipient failing never affects its siblings
- cancellation stops new deliveries but never interrupts one in flight
"""

import asyncio
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from receipt_mailer.cancellation import CancellationToken
from receipt_mailer.errors import (
    DeliveryFailedError,
    OperationCanceledError,
    ValidationError,
)
from receipt_mailer.interfaces import Transport
from receipt_mailer.models import DeliveryJob, DeliveryOutcome
from receipt_mailer.reporting import MetricsReporter, NullReporter

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PARALLEL = 10

CANCELED_CAUSE = 'canceled'


# =============================================================================
# Result Model
# =============================================================================


@dataclass
class DispatchResult:
    """
    Aggregate result of one bulk send.

    ``error`` is None when every job succeeded, otherwise a
    DeliveryFailedError listing each failed recipient with its cause.
    """

    sent_count: int = 0
    error: DeliveryFailedError | None = None
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    started_at: datetime | None = None
    completed_at: datetime | None = None
    dispatch_time_ms: int | None = None

    @property
    def failed_count(self) -> int:
        return self.error.failed_count if self.error else 0

    @property
    def total_count(self) -> int:
        return len(self.outcomes)

    @property
    def all_succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging / API responses."""
        return {
            'sent_count': self.sent_count,
            'failed_count': self.failed_count,
            'total_count': self.total_count,
            'failed': self.error.entries if self.error else {},
            'dispatch_time_ms': self.dispatch_time_ms,
        }


# =============================================================================
# BulkDispatcher
# =============================================================================


class BulkDispatcher:
    """
    Sends a batch of delivery jobs with bounded parallelism.

    The transport is shared by all tasks of a batch, so it must be safe for
    concurrent use. SmtpTransport meets this by opening an independent
    connection per call and holding no mutable state.
    """

    def __init__(
        self,
        transport: Transport,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        reporter: MetricsReporter | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            transport: Transport used for every delivery in every batch
            max_parallel: Default ceiling on simultaneous deliveries
            reporter: Metrics side channel (defaults to NullReporter)
        """
        if max_parallel < 1:
            raise ValueError('max_parallel must be at least 1')
        self.transport = transport
        self.max_parallel = max_parallel
        self.reporter = reporter or NullReporter()

    async def send_bulk(
        self,
        jobs: Sequence[DeliveryJob],
        cancel_token: CancellationToken | None = None,
        max_parallel: int | None = None,
    ) -> DispatchResult:
        """
        Attempt every job exactly once with at most ``max_parallel`` in flight.

        Args:
            jobs: Non-empty list of delivery jobs
            cancel_token: Request-wide cancellation token
            max_parallel: Override the dispatcher's default ceiling

        Returns:
            DispatchResult with sent_count and an optional DeliveryFailedError

        Raises:
            ValidationError: If ``jobs`` is empty or names a recipient twice
            OperationCanceledError: If the token was cancelled before the batch
        """
        width = max_parallel or self.max_parallel
        log = logger.bind(recipients_total=len(jobs), max_parallel=width)

        if not jobs:
            log.warning('dispatcher.validation_failed', reason='no recipients provided')
            raise ValidationError('no recipients provided')

        duplicates = sorted(r for r, n in Counter(j.recipient for j in jobs).items() if n > 1)
        if duplicates:
            log.warning('dispatcher.validation_failed', reason='duplicate recipients')
            raise ValidationError(
                'duplicate recipients in one batch',
                context={'recipients': duplicates},
            )

        if cancel_token is not None and cancel_token.cancelled:
            log.warning('dispatcher.aborted', reason=cancel_token.reason)
            raise OperationCanceledError(
                'operation canceled before sending',
                context={'reason': cancel_token.reason},
            )

        started_at = datetime.now()
        t0 = time.monotonic()
        log.info('dispatcher.started')

        semaphore = asyncio.Semaphore(width)
        tasks = [
            asyncio.create_task(self._deliver_one(job, semaphore, cancel_token))
            for job in jobs
        ]

        # Barrier: every task reports before anything is collected
        raw = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: list[DeliveryOutcome] = []
        for job, item in zip(jobs, raw):
            if isinstance(item, BaseException):
                # _deliver_one catches Exception, so only cancellation lands here
                outcomes.append(DeliveryOutcome.failure(job, f"{type(item).__name__}: {item}"))
            else:
                outcomes.append(item)

        result = self._aggregate(outcomes)
        result.started_at = started_at
        result.completed_at = datetime.now()
        result.dispatch_time_ms = int((time.monotonic() - t0) * 1000)

        self.reporter.record_delivery(
            sent=result.sent_count,
            failed=result.failed_count,
            duration_ms=float(result.dispatch_time_ms),
        )
        log.info(
            'dispatcher.complete',
            sent_count=result.sent_count,
            failed_count=result.failed_count,
            dispatch_time_ms=result.dispatch_time_ms,
        )
        return result

    async def _deliver_one(
        self,
        job: DeliveryJob,
        semaphore: asyncio.Semaphore,
        cancel_token: CancellationToken | None,
    ) -> DeliveryOutcome:
        """Run one job behind the admission gate and return its outcome."""
        async with semaphore:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info('dispatcher.job_canceled', recipient=job.recipient)
                return DeliveryOutcome.failure(job, CANCELED_CAUSE)

            if job.artifact_path is None or not await asyncio.to_thread(job.artifact_path.is_file):
                cause = f"attachment for {job.recipient} not found: {job.artifact_path}"
                logger.warning('dispatcher.attachment_missing', recipient=job.recipient)
                return DeliveryOutcome.failure(job, cause)

            try:
                await self.transport.deliver(job)
            except Exception as e:
                logger.error(
                    'dispatcher.job_failed',
                    recipient=job.recipient,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return DeliveryOutcome.failure(job, str(e))

        return DeliveryOutcome.success(job)

    @staticmethod
    def _aggregate(outcomes: list[DeliveryOutcome]) -> DispatchResult:
        failed = {o.recipient: o.cause or 'unknown error' for o in outcomes if not o.succeeded}
        paths = {
            o.recipient: str(o.artifact_path)
            for o in outcomes
            if not o.succeeded and o.artifact_path is not None
        }
        return DispatchResult(
            sent_count=sum(1 for o in outcomes if o.succeeded),
            error=DeliveryFailedError(failed, paths) if failed else None,
            outcomes=outcomes,
        )
