"""
Tests for the metrics reporters.
"""

import pytest
from prometheus_client import CollectorRegistry

from receipt_mailer.reporting import (
    FanoutReporter,
    InMemoryReporter,
    LogReporter,
    NullReporter,
    PrometheusReporter,
    delivery_status,
)


@pytest.mark.parametrize(
    'sent, failed, expected',
    [(3, 0, 'success'), (0, 0, 'success'), (0, 2, 'failure'), (2, 1, 'partial')],
)
def test_delivery_status(sent, failed, expected):
    assert delivery_status(sent, failed) == expected


class TestInMemoryReporter:
    def test_records_everything(self):
        reporter = InMemoryReporter()

        reporter.record_stage('parse', 'success', 1.5)
        reporter.record_stage('parse', 'failure', 2.0, error_kind='user')
        reporter.record_delivery(sent=2, failed=1, duration_ms=30.0)
        reporter.record_batch('partially_succeeded', 40.0, beneficiaries=3, missing=0, sent=2)

        assert reporter.stage_statuses() == {'parse': 'failure'}
        assert reporter.stages[1]['error_kind'] == 'user'
        assert reporter.deliveries[0]['status'] == 'partial'
        assert reporter.batches[0]['beneficiaries'] == 3


class TestOtherReporters:
    def test_null_reporter_accepts_calls(self):
        reporter = NullReporter()
        reporter.record_stage('parse', 'success', 1.0)
        reporter.record_delivery(1, 0, 1.0)
        reporter.record_batch('succeeded', 1.0, 1, 0, 1)

    def test_log_reporter_accepts_calls(self):
        reporter = LogReporter()
        reporter.record_stage('dispatch', 'success', 12.345)
        reporter.record_delivery(2, 0, 5.0)
        reporter.record_batch('succeeded', 20.0, 2, 0, 2)


class TestPrometheusReporter:
    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    def test_stage_counts_and_duration(self, registry):
        reporter = PrometheusReporter(registry=registry)

        reporter.record_stage('parse', 'success', 1500.0)
        reporter.record_stage('parse', 'failure', 20.0, error_kind='user')

        assert registry.get_sample_value(
            'receipt_mailer_stage_total',
            {'stage': 'parse', 'status': 'failure', 'error_kind': 'user'},
        ) == 1.0
        assert registry.get_sample_value(
            'receipt_mailer_stage_duration_seconds_sum',
            {'stage': 'parse', 'status': 'success'},
        ) == pytest.approx(1.5)

    def test_delivery_counts(self, registry):
        reporter = PrometheusReporter(registry=registry)

        reporter.record_delivery(sent=2, failed=1, duration_ms=300.0)

        assert registry.get_sample_value('receipt_mailer_send_mails_total', {'status': 'partial'}) == 1.0
        assert registry.get_sample_value('receipt_mailer_emails_total', {'result': 'success'}) == 2.0
        assert registry.get_sample_value('receipt_mailer_emails_total', {'result': 'failure'}) == 1.0

    def test_batch_counts(self, registry):
        reporter = PrometheusReporter(registry=registry)

        reporter.record_batch('partially_succeeded', 2500.0, beneficiaries=3, missing=1, sent=2)

        assert registry.get_sample_value(
            'receipt_mailer_batch_total', {'outcome': 'partially_succeeded'}
        ) == 1.0
        assert registry.get_sample_value('receipt_mailer_beneficiaries_per_batch_sum') == 3.0
        assert registry.get_sample_value('receipt_mailer_missing_payers_total') == 1.0


class TestFanoutReporter:
    def test_forwards_to_every_reporter(self):
        first, second = InMemoryReporter(), InMemoryReporter()
        reporter = FanoutReporter(first, second)

        reporter.record_stage('dispatch', 'success', 5.0)
        reporter.record_delivery(1, 0, 5.0)
        reporter.record_batch('succeeded', 10.0, 1, 0, 1)

        for target in (first, second):
            assert target.stage_statuses() == {'dispatch': 'success'}
            assert len(target.deliveries) == 1
            assert len(target.batches) == 1
