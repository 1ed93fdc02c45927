"""
Batch pipeline orchestrator for payer receipt processing.

Runs one uploaded payers file through the stages, in order:
1. validate         - recipient mapping and sender address are configured
2. store            - persist the uploaded bytes
3. parse            - beneficiaries and organization profile
4. record_history   - durable record of what is about to be processed
5. generate         - one receipt per beneficiary (unmapped ones collected)
6. dispatch         - bulk send through BulkDispatcher
7. aggregate        - fold mapping gaps and delivery failures together

Stages 1-5 are fatal on error: the exception propagates and nothing after
it runs. Mapping gaps and delivery failures are partial: they are returned
on the BatchResult as one CompositeError next to whatever did succeed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from dispatcher.dispatcher import BulkDispatcher, DispatchResult

from ..cancellation import CancellationToken
from ..config import config
from ..errors import (
    CompositeError,
    ErrorKind,
    HistoryError,
    OperationCanceledError,
    ParseError,
    ReceiptMailerError,
    SettingsError,
    StorageError,
    ValidationError,
    error_kind,
)
from ..interfaces import (
    ArtifactRenderer,
    BeneficiaryParser,
    FileStorage,
    HistoryStore,
    OrganizationParser,
    PaymentCodeGenerator,
    RecipientMappingStore,
)
from ..logging import PipelineTimer, get_logger, logging_context
from ..models import Beneficiary, DeliveryJob, OrganizationProfile, SenderSettings
from ..reporting import MetricsReporter, NullReporter
from .artifacts import ArtifactGenerator, GenerationOutput

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    """Pipeline stages in execution order."""

    VALIDATE = 'validate'
    STORE = 'store'
    PARSE = 'parse'
    RECORD_HISTORY = 'record_history'
    GENERATE = 'generate'
    DISPATCH = 'dispatch'
    AGGREGATE = 'aggregate'


class BatchOutcome(str, Enum):
    """Terminal state of a batch that was not aborted."""

    SUCCEEDED = 'succeeded'
    PARTIALLY_SUCCEEDED = 'partially_succeeded'
    FAILED = 'failed'


@dataclass
class BatchResult:
    """Result of processing one payers file through the pipeline."""

    batch_id: str
    source_file: str

    # What succeeded, always populated even on partial failure
    artifacts_by_recipient: dict[str, Path] = field(default_factory=dict)
    sent_count: int = 0

    # Partial failures (None on full success)
    error: CompositeError | None = None

    # Statistics
    beneficiaries_total: int = 0
    skipped_total: int = 0

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    @property
    def outcome(self) -> BatchOutcome:
        return BatchOutcome.SUCCEEDED if self.error is None else BatchOutcome.PARTIALLY_SUCCEEDED

    @property
    def partial_success(self) -> bool:
        return self.error is not None

    @property
    def missing_payers(self) -> list[str]:
        """Beneficiaries never attempted because no address was mapped."""
        if self.error is None or self.error.mapping_error is None:
            return []
        return list(self.error.mapping_error.entries)

    @property
    def failed_emails(self) -> list[str]:
        """Recipients whose delivery was attempted and failed."""
        if self.error is None or self.error.delivery_error is None:
            return []
        return list(self.error.delivery_error.entries)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'batch_id': self.batch_id,
            'source_file': self.source_file,
            'outcome': self.outcome.value,
            'artifacts_by_recipient': {
                k: str(v) for k, v in sorted(self.artifacts_by_recipient.items())
            },
            'sent_count': self.sent_count,
            'missing_payers': self.missing_payers,
            'failed_emails': self.failed_emails,
            'beneficiaries_total': self.beneficiaries_total,
            'skipped_total': self.skipped_total,
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
            'error': str(self.error) if self.error else None,
        }


class BatchPipeline:
    """
    End-to-end pipeline turning a payers file into delivered receipts.

    Orchestrates:
    - RecipientMappingStore / HistoryStore: settings snapshot and history log
    - FileStorage: uploaded file and per-request output directories
    - BeneficiaryParser / OrganizationParser: spreadsheet ingestion
    - ArtifactGenerator: receipt + payment code rendering
    - BulkDispatcher: bounded-parallel delivery

    Usage:
        pipeline = await BatchPipeline.from_config()
        result = await pipeline.process_batch(token, 'payers.xlsx', data)
    """

    def __init__(
        self,
        settings_store: RecipientMappingStore,
        history_store: HistoryStore,
        storage: FileStorage,
        beneficiary_parser: BeneficiaryParser,
        organization_parser: OrganizationParser,
        renderer: ArtifactRenderer,
        code_generator: PaymentCodeGenerator,
        dispatcher: BulkDispatcher,
        reporter: MetricsReporter | None = None,
        mail_subject: str | None = None,
        mail_body: str | None = None,
    ):
        """
        Initialize the pipeline with its collaborators.

        Args:
            settings_store: Source of the recipient mapping and sender address
            history_store: Append-only log of processed files
            storage: Where uploads and generated files are written
            beneficiary_parser: Extracts payer rows from the stored upload
            organization_parser: Extracts payee credentials from the stored upload
            renderer: Receipt template / receipt renderer
            code_generator: Payment code image generator
            dispatcher: Bulk sender for the delivery stage
            reporter: Metrics side channel (defaults to NullReporter)
            mail_subject: Subject of every message (defaults to config.MAIL_SUBJECT)
            mail_body: Body of every message (defaults to config.MAIL_BODY)
        """
        self.settings_store = settings_store
        self.history_store = history_store
        self.storage = storage
        self.beneficiary_parser = beneficiary_parser
        self.organization_parser = organization_parser
        self.dispatcher = dispatcher
        self.reporter = reporter or NullReporter()
        self.mail_subject = mail_subject if mail_subject is not None else config.MAIL_SUBJECT
        self.mail_body = mail_body if mail_body is not None else config.MAIL_BODY

        self.generator = ArtifactGenerator(renderer, code_generator, storage)
        self.postgres_client = None

    @classmethod
    async def from_config(cls, reporter: MetricsReporter | None = None) -> BatchPipeline:
        """
        Create a pipeline wired to the default adapters.

        Expects:
            DATABASE_URL: Postgres URL holding settings and history
            SMTP_HOST / SMTP_PORT / SMTP_EMAIL / SMTP_PASSWORD: mail server
            RECEIPT_TEMPLATE_PATH: blank receipt PDF

        Returns:
            Configured and connected BatchPipeline
        """
        from ..clients.postgres_client import PostgresClient
        from ..clients.smtp_client import SmtpTransport
        from ..parsing.spreadsheet import SpreadsheetParser
        from ..payment_code import QrPaymentCodeGenerator
        from ..rendering import PdfReceiptRenderer
        from ..repository import HistoryRepository, SettingsRepository
        from ..storage import LocalFileStorage

        postgres = PostgresClient(config.DATABASE_URL)
        await postgres.connect()
        await postgres.setup_schema()

        parser = SpreadsheetParser()
        transport = SmtpTransport.from_config()
        pipeline = cls(
            settings_store=SettingsRepository(postgres),
            history_store=HistoryRepository(postgres),
            storage=LocalFileStorage(config.TMP_DIR),
            beneficiary_parser=parser,
            organization_parser=parser,
            renderer=PdfReceiptRenderer(
                template_path=config.RECEIPT_TEMPLATE_PATH,
                font_path=config.RECEIPT_FONT_PATH or None,
            ),
            code_generator=QrPaymentCodeGenerator(),
            dispatcher=BulkDispatcher(
                transport,
                max_parallel=config.MAX_PARALLEL_SENDS,
                reporter=reporter,
            ),
            reporter=reporter,
        )
        pipeline.postgres_client = postgres
        return pipeline

    async def close(self) -> None:
        """Close the database connection opened by from_config()."""
        if self.postgres_client is not None:
            await self.postgres_client.close()
            self.postgres_client = None

    async def process_batch(
        self,
        cancel_token: CancellationToken | None,
        source_file_name: str,
        source_bytes: bytes,
    ) -> BatchResult:
        """
        Process an uploaded payers file through the full pipeline.

        Args:
            cancel_token: Request-wide cancellation token
            source_file_name: Original name of the uploaded file
            source_bytes: Uploaded file contents

        Returns:
            BatchResult. ``result.error`` is None on full success, otherwise a
            CompositeError with the mapping and/or delivery failures; the
            artifacts map and sent count are meaningful either way.

        Raises:
            ValidationError: Settings are incomplete
            SettingsError / StorageError / HistoryError: Infrastructure failures
            ParseError (or the parser's own error): Unreadable source file
            RenderError: Template or receipt rendering failed
            OperationCanceledError: The token was cancelled between stages
        """
        token = cancel_token or CancellationToken.never()
        timer = PipelineTimer()
        result = BatchResult(batch_id=uuid4().hex, source_file=source_file_name)

        with logging_context(batch_id=result.batch_id, source_file=source_file_name):
            logger.info('pipeline.started', size_bytes=len(source_bytes))

            try:
                with self._stage(timer, PipelineStage.VALIDATE, token):
                    settings = await self._validate()

                with self._stage(timer, PipelineStage.STORE, token):
                    stored_path = await self._store(source_file_name, source_bytes)

                with self._stage(timer, PipelineStage.PARSE, token):
                    beneficiaries, profile = await self._parse(stored_path)
                result.beneficiaries_total = len(beneficiaries)

                with self._stage(timer, PipelineStage.RECORD_HISTORY, token):
                    await self._record_history(source_file_name, source_bytes)

                with self._stage(timer, PipelineStage.GENERATE, token):
                    generation = await asyncio.to_thread(
                        self.generator.generate,
                        beneficiaries,
                        profile,
                        settings.mapping,
                        token,
                    )
                result.artifacts_by_recipient = dict(generation.artifacts)
                result.skipped_total = generation.skipped

                with self._stage(timer, PipelineStage.DISPATCH, token):
                    dispatch = await self._dispatch(generation, token)
            except Exception as e:
                self.reporter.record_batch(
                    outcome=BatchOutcome.FAILED.value,
                    duration_ms=timer.total_ms,
                    beneficiaries=result.beneficiaries_total,
                    missing=0,
                    sent=0,
                )
                logger.error(
                    'pipeline.failed',
                    error=str(e),
                    error_type=type(e).__name__,
                    **timer.summary(),
                )
                raise

            with timer.stage(PipelineStage.AGGREGATE.value):
                mapping_error = generation.mapping_error
                delivery_error = dispatch.error if dispatch is not None else None
                result.sent_count = dispatch.sent_count if dispatch is not None else 0
                if mapping_error is not None or delivery_error is not None:
                    result.error = CompositeError(mapping_error, delivery_error)

            result.completed_at = datetime.now()
            result.processing_time_ms = int(timer.total_ms)
            result.stage_timings = timer.stages.copy()

            self.reporter.record_batch(
                outcome=result.outcome.value,
                duration_ms=timer.total_ms,
                beneficiaries=result.beneficiaries_total,
                missing=mapping_error.failed_count if mapping_error else 0,
                sent=result.sent_count,
            )
            logger.info(
                'pipeline.complete',
                outcome=result.outcome.value,
                beneficiaries=result.beneficiaries_total,
                mails_sent=result.sent_count,
                missing_count=len(result.missing_payers),
                failed_count=len(result.failed_emails),
                **timer.summary(),
            )
            return result

    # =========================================================================
    # Stages
    # =========================================================================

    @contextmanager
    def _stage(
        self,
        timer: PipelineTimer,
        stage: PipelineStage,
        token: CancellationToken,
    ) -> Generator[None, None, None]:
        """Time a stage, honour cancellation and report its status."""
        if token.cancelled:
            logger.warning('pipeline.canceled', stage=stage.value, reason=token.reason)
            raise OperationCanceledError(
                'operation canceled',
                context={'stage': stage.value, 'reason': token.reason},
            )
        try:
            with timer.stage(stage.value):
                yield
        except Exception as e:
            kind = error_kind(e)
            self.reporter.record_stage(
                stage.value,
                'failure',
                timer.stages.get(stage.value, 0.0),
                error_kind=kind.value if kind else None,
            )
            logger.error(
                'pipeline.stage_failed',
                stage=stage.value,
                error=str(e),
                error_type=type(e).__name__,
                error_kind=kind.value if kind else None,
            )
            raise
        self.reporter.record_stage(stage.value, 'success', timer.stages.get(stage.value, 0.0))

    async def _validate(self) -> SenderSettings:
        try:
            settings = await self.settings_store.get()
        except Exception as e:
            raise SettingsError(f"Failed to load settings: {e}") from e

        if settings.mapping is None or len(settings.mapping) == 0:
            raise ValidationError('emails file is not uploaded')
        if not settings.sender_email:
            raise ValidationError('sender email is not set')
        return settings

    async def _store(self, file_name: str, data: bytes) -> Path:
        try:
            path = await asyncio.to_thread(self.storage.store, file_name, data)
        except Exception as e:
            raise StorageError(
                f"Failed to store uploaded file: {e}",
                context={'file_name': file_name},
            ) from e
        logger.info('pipeline.file_stored', path=str(path))
        return path

    async def _parse(self, path: Path) -> tuple[list[Beneficiary], OrganizationProfile]:
        try:
            beneficiaries = await asyncio.to_thread(
                self.beneficiary_parser.parse_beneficiaries, path
            )
            profile = await asyncio.to_thread(self.organization_parser.parse_organization, path)
        except ReceiptMailerError:
            # Parser errors already carry their kind
            raise
        except Exception as e:
            raise ParseError(
                f"Failed to parse source file: {e}",
                context={'path': str(path)},
                kind=ErrorKind.SYSTEM,
            ) from e

        logger.info('pipeline.parsed', beneficiaries=len(beneficiaries), organization=profile.name)
        return beneficiaries, profile

    async def _record_history(self, file_name: str, data: bytes) -> None:
        try:
            await self.history_store.append(file_name, data)
        except Exception as e:
            raise HistoryError(
                f"Failed to add history record: {e}",
                context={'file_name': file_name},
            ) from e

    async def _dispatch(
        self,
        generation: GenerationOutput,
        token: CancellationToken,
    ) -> DispatchResult | None:
        jobs = [
            DeliveryJob(
                recipient=address,
                subject=self.mail_subject,
                body=self.mail_body,
                artifact_path=path,
            )
            for address, path in sorted(generation.artifacts.items())
        ]
        if not jobs:
            logger.warning('pipeline.dispatch_skipped', reason='no mapped recipients')
            return None
        return await self.dispatcher.send_bulk(jobs, cancel_token=token)
