"""
Metrics reporting port.

The pipeline and the dispatcher report counts and durations through an
injected MetricsReporter instead of process-wide counters. Three
implementations ship with the package:

- NullReporter: discards everything (default)
- LogReporter: emits one structlog event per call
- PrometheusReporter: counters and histograms served on /metrics
- InMemoryReporter: keeps every record for tests and local debugging

FanoutReporter forwards every call to several reporters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class MetricsReporter(Protocol):
    """Side channel for per-stage and per-batch observations."""

    def record_stage(
        self,
        stage: str,
        status: str,
        duration_ms: float,
        error_kind: str | None = None,
    ) -> None: ...

    def record_delivery(self, sent: int, failed: int, duration_ms: float) -> None: ...

    def record_batch(
        self,
        outcome: str,
        duration_ms: float,
        beneficiaries: int,
        missing: int,
        sent: int,
    ) -> None: ...


class NullReporter:
    """Reporter that drops every observation."""

    def record_stage(self, stage, status, duration_ms, error_kind=None) -> None:
        pass

    def record_delivery(self, sent, failed, duration_ms) -> None:
        pass

    def record_batch(self, outcome, duration_ms, beneficiaries, missing, sent) -> None:
        pass


class LogReporter:
    """Reporter that writes observations as structured log events."""

    def __init__(self, logger_name: str = 'receipt_mailer.metrics'):
        self._log = structlog.get_logger(logger_name)

    def record_stage(self, stage, status, duration_ms, error_kind=None) -> None:
        self._log.info(
            'metrics.stage',
            stage=stage,
            status=status,
            duration_ms=round(duration_ms, 2),
            error_kind=error_kind,
        )

    def record_delivery(self, sent, failed, duration_ms) -> None:
        self._log.info(
            'metrics.delivery',
            sent=sent,
            failed=failed,
            status=delivery_status(sent, failed),
            duration_ms=round(duration_ms, 2),
        )

    def record_batch(self, outcome, duration_ms, beneficiaries, missing, sent) -> None:
        self._log.info(
            'metrics.batch',
            outcome=outcome,
            duration_ms=round(duration_ms, 2),
            beneficiaries=beneficiaries,
            missing=missing,
            sent=sent,
        )


class PrometheusReporter:
    """
    Reporter backed by prometheus_client counters and histograms.

    Metrics are registered once per instance, so a process should build one
    reporter per registry. Tests pass their own CollectorRegistry.
    """

    def __init__(self, namespace: str = 'receipt_mailer', registry: CollectorRegistry = REGISTRY):
        self.stage_total = Counter(
            'stage_total',
            'Pipeline stage runs by stage, status and error kind',
            ['stage', 'status', 'error_kind'],
            namespace=namespace,
            registry=registry,
        )
        self.stage_duration = Histogram(
            'stage_duration_seconds',
            'Pipeline stage duration',
            ['stage', 'status'],
            namespace=namespace,
            registry=registry,
            buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
        )
        self.send_mails_total = Counter(
            'send_mails_total',
            'Bulk sends by overall status',
            ['status'],
            namespace=namespace,
            registry=registry,
        )
        self.emails_total = Counter(
            'emails_total',
            'Individual deliveries by result',
            ['result'],
            namespace=namespace,
            registry=registry,
        )
        self.send_mails_duration = Histogram(
            'send_mails_duration_seconds',
            'Duration of one bulk send',
            ['status'],
            namespace=namespace,
            registry=registry,
            buckets=(1, 5, 10, 30, 60, 120, 300, 600),
        )
        self.batch_total = Counter(
            'batch_total',
            'Processed payers files by outcome',
            ['outcome'],
            namespace=namespace,
            registry=registry,
        )
        self.batch_duration = Histogram(
            'batch_duration_seconds',
            'End-to-end latency per payers file',
            ['outcome'],
            namespace=namespace,
            registry=registry,
            buckets=(0.5, 1, 2, 5, 10, 20, 30, 60, 120),
        )
        self.beneficiaries_parsed = Histogram(
            'beneficiaries_per_batch',
            'Number of payers parsed per file',
            namespace=namespace,
            registry=registry,
            buckets=(10, 50, 100, 500, 1000, 5000, 10000),
        )
        self.missing_payers_total = Counter(
            'missing_payers_total',
            'Payers skipped for lack of a mapped address',
            namespace=namespace,
            registry=registry,
        )

    def record_stage(self, stage, status, duration_ms, error_kind=None) -> None:
        self.stage_total.labels(stage, status, error_kind or '').inc()
        self.stage_duration.labels(stage, status).observe(duration_ms / 1000)

    def record_delivery(self, sent, failed, duration_ms) -> None:
        status = delivery_status(sent, failed)
        self.send_mails_total.labels(status).inc()
        self.emails_total.labels('success').inc(sent)
        self.emails_total.labels('failure').inc(failed)
        self.send_mails_duration.labels(status).observe(duration_ms / 1000)

    def record_batch(self, outcome, duration_ms, beneficiaries, missing, sent) -> None:
        self.batch_total.labels(outcome).inc()
        self.batch_duration.labels(outcome).observe(duration_ms / 1000)
        self.beneficiaries_parsed.observe(beneficiaries)
        self.missing_payers_total.inc(missing)


class FanoutReporter:
    """Reporter that forwards each observation to every wrapped reporter."""

    def __init__(self, *reporters: MetricsReporter):
        self.reporters = reporters

    def record_stage(self, stage, status, duration_ms, error_kind=None) -> None:
        for reporter in self.reporters:
            reporter.record_stage(stage, status, duration_ms, error_kind)

    def record_delivery(self, sent, failed, duration_ms) -> None:
        for reporter in self.reporters:
            reporter.record_delivery(sent, failed, duration_ms)

    def record_batch(self, outcome, duration_ms, beneficiaries, missing, sent) -> None:
        for reporter in self.reporters:
            reporter.record_batch(outcome, duration_ms, beneficiaries, missing, sent)


@dataclass
class InMemoryReporter:
    """Reporter that stores observations in process memory."""

    stages: list[dict[str, Any]] = field(default_factory=list)
    deliveries: list[dict[str, Any]] = field(default_factory=list)
    batches: list[dict[str, Any]] = field(default_factory=list)

    def record_stage(self, stage, status, duration_ms, error_kind=None) -> None:
        self.stages.append(
            {
                'stage': stage,
                'status': status,
                'duration_ms': duration_ms,
                'error_kind': error_kind,
            }
        )

    def record_delivery(self, sent, failed, duration_ms) -> None:
        self.deliveries.append(
            {
                'sent': sent,
                'failed': failed,
                'status': delivery_status(sent, failed),
                'duration_ms': duration_ms,
            }
        )

    def record_batch(self, outcome, duration_ms, beneficiaries, missing, sent) -> None:
        self.batches.append(
            {
                'outcome': outcome,
                'duration_ms': duration_ms,
                'beneficiaries': beneficiaries,
                'missing': missing,
                'sent': sent,
            }
        )

    def stage_statuses(self) -> dict[str, str]:
        """Last reported status per stage name."""
        return {row['stage']: row['status'] for row in self.stages}


def delivery_status(sent: int, failed: int) -> str:
    """'success' when nothing failed, 'failure' when nothing was sent, else 'partial'."""
    if failed == 0:
        return 'success'
    if sent == 0:
        return 'failure'
    return 'partial'
