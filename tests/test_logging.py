"""
Tests for the logging module.
"""

import pytest

from receipt_mailer.logging import (
    PipelineTimer,
    add_context_info,
    get_batch_id,
    get_source_file,
    get_trace_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        with logging_context(trace_id="trace_123", batch_id="b-1", source_file="payers.xlsx"):
            assert get_trace_id() == "trace_123"
            assert get_batch_id() == "b-1"
            assert get_source_file() == "payers.xlsx"

    def test_logging_context_restores_values(self):
        with logging_context(batch_id="outer"):
            assert get_batch_id() == "outer"

            with logging_context(batch_id="inner"):
                assert get_batch_id() == "inner"

            assert get_batch_id() == "outer"

        assert get_batch_id() is None

    def test_logging_context_partial_values(self):
        with logging_context(source_file="only.xlsx"):
            assert get_source_file() == "only.xlsx"
            assert get_trace_id() is None

    def test_context_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with logging_context(batch_id="failing"):
                raise RuntimeError("boom")
        assert get_batch_id() is None

    def test_context_injected_into_event(self):
        with logging_context(batch_id="b-7"):
            event = add_context_info(None, "info", {"event": "pipeline.started"})
        assert event["batch_id"] == "b-7"


class TestPipelineTimer:
    """Test pipeline timing functionality."""

    def test_timer_records_stages(self):
        timer = PipelineTimer()

        with timer.stage("parse"):
            pass

        with timer.stage("dispatch"):
            pass

        assert timer.stages["parse"] >= 0
        assert timer.stages["dispatch"] >= 0

    def test_timer_records_failed_stage(self):
        timer = PipelineTimer()

        with pytest.raises(ValueError):
            with timer.stage("generate"):
                raise ValueError("render failed")

        assert "generate" in timer.stages

    def test_timer_summary(self):
        timer = PipelineTimer()
        timer.record("parse", 100.0)
        timer.record("dispatch", 50.0)

        summary = timer.summary()

        assert summary["total_ms"] >= 0
        assert summary["stages"] == {"parse": 100.0, "dispatch": 50.0}
