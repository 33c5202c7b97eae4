"""
Unit tests for metrics collection and logging utilities.
"""

import json
import logging
from unittest.mock import patch

import pytest

from src.pipeline.classifier import QueryIntentClassifier
from src.utils import get_logger, track_event, track_metric
from src.utils.logging import (
    ANALYSIS_LOGGERS,
    ContextLogger,
    JSONFormatter,
    SensitiveDataScrubber,
    TextFormatter,
    set_analysis_debug,
)
from src.utils.observability import MAX_HISTORY, MetricsCollector, track_latency


@pytest.fixture
def metrics_collector():
    """Create a fresh metrics collector"""
    return MetricsCollector()


class TestMetricsCollector:
    """Test in-memory metrics"""

    def test_empty_summary(self, metrics_collector):
        """Test summaries before anything is recorded"""
        summary = metrics_collector.get_metrics_summary()

        assert summary["latency"]["count"] == 0
        assert summary["cache"]["hit_rate"] == 0
        assert summary["analysis"] == {
            "average_analysis_time_ms": 0.0,
            "context_usage_rate": 0.0,
            "total_queries": 0,
        }

    def test_latency_history_bounded(self, metrics_collector):
        """Test old latency entries are dropped"""
        for i in range(MAX_HISTORY + 10):
            metrics_collector.record_latency("query_analysis", 0.001)

        assert len(metrics_collector.metrics["latency"]) == MAX_HISTORY

    def test_analysis_summary(self, metrics_collector):
        """Test analysis time only counts query analysis operations"""
        metrics_collector.record_latency("query_analysis", 0.002)
        metrics_collector.record_latency("query_analysis", 0.004)
        metrics_collector.record_latency("semantic_search", 1.0)
        metrics_collector.record_context_decision(True)
        metrics_collector.record_context_decision(False)
        metrics_collector.record_context_decision(True)

        summary = metrics_collector.get_analysis_summary()

        assert summary["average_analysis_time_ms"] == pytest.approx(3.0)
        assert summary["context_usage_rate"] == pytest.approx(2 / 3)
        assert summary["total_queries"] == 3

    def test_cache_hit_rate(self, metrics_collector):
        """Test cache hit rate calculation"""
        metrics_collector.increment_cache_hit()
        metrics_collector.increment_cache_hit()
        metrics_collector.increment_cache_hit()
        metrics_collector.increment_cache_miss()

        assert metrics_collector.get_metrics_summary()["cache"]["hit_rate"] == pytest.approx(0.75)

    def test_errors_and_categories_counted(self, metrics_collector):
        """Test error and category counters"""
        metrics_collector.record_error("query_analysis", "boom")
        metrics_collector.record_error("query_analysis")
        metrics_collector.record_category("file_reference")

        summary = metrics_collector.get_metrics_summary()

        assert summary["errors"] == {"query_analysis": 2}
        assert summary["categories"] == {"file_reference": 1}

    def test_reset(self, metrics_collector):
        """Test reset clears everything"""
        metrics_collector.record_category("file_reference")
        metrics_collector.increment_cache_hit()

        metrics_collector.reset()

        assert metrics_collector.metrics["categories"] == {}
        assert metrics_collector.metrics["cache_hits"] == 0

    def test_track_latency_records_on_error(self):
        """Test latency is recorded even when the block raises"""
        with patch("src.utils.observability.metrics") as mock_metrics:
            with pytest.raises(RuntimeError):
                with track_latency("query_analysis"):
                    raise RuntimeError("boom")

        mock_metrics.record_latency.assert_called_once()
        assert mock_metrics.record_latency.call_args.args[0] == "query_analysis"

    def test_track_metric_and_event_log(self):
        """Test custom metrics and events are logged"""
        with patch("src.utils.observability.logger") as mock_logger:
            track_metric("context_files", 3)
            track_event("preset_applied", {"preset": "debug"})

        assert mock_logger.info.call_count == 2


class TestSensitiveDataScrubber:
    """Test log scrubbing"""

    def test_scrubs_credentials(self):
        """Test API keys, tokens and emails are removed"""
        scrubber = SensitiveDataScrubber()
        text = (
            "key AIza" + "A" * 35 + " user dev@example.com "
            "Authorization: Bearer abc.def.ghi url?api_key=secret123&x=1"
        )

        scrubbed = scrubber.scrub(text)

        assert "AIza" not in scrubbed
        assert "dev@example.com" not in scrubbed
        assert "abc.def.ghi" not in scrubbed
        assert "secret123" not in scrubbed
        assert "[API_KEY]" in scrubbed
        assert "[EMAIL]" in scrubbed

    def test_disabled_scrubber_passes_through(self):
        """Test scrubbing can be turned off"""
        scrubber = SensitiveDataScrubber(enabled=False)

        assert scrubber.scrub("dev@example.com") == "dev@example.com"


class TestFormatters:
    """Test log formatters"""

    def _record(self, msg, extra_fields=None):
        record = logging.LogRecord("test", logging.INFO, __file__, 10, msg, None, None)
        if extra_fields is not None:
            record.extra_fields = extra_fields
        return record

    def test_json_formatter(self):
        """Test JSON output includes scrubbed message and extra fields"""
        formatter = JSONFormatter(SensitiveDataScrubber())

        output = json.loads(
            formatter.format(self._record("mail dev@example.com", {"category": "file_reference"}))
        )

        assert output["message"] == "mail [EMAIL]"
        assert output["level"] == "INFO"
        assert output["category"] == "file_reference"

    def test_json_formatter_shortens_query_field(self):
        """Test raw query text is cut while other fields stay whole"""
        formatter = JSONFormatter(SensitiveDataScrubber(max_text_chars=10))
        query = "explain the retry loop in worker.py please"

        output = json.loads(
            formatter.format(self._record("Query analyzed", {"query": query, "reasoning": query}))
        )

        assert output["query"] == f"explain th...[{len(query)} chars]"
        assert output["reasoning"] == query

    def test_text_formatter_appends_fields(self):
        """Test the text formatter scrubs a copy and appends extra fields"""
        formatter = TextFormatter(SensitiveDataScrubber(max_text_chars=0))
        record = self._record("mail dev@example.com", {"category": "file_reference", "confidence": 0.75})

        output = formatter.format(record)

        assert "mail [EMAIL]" in output
        assert output.endswith('| category="file_reference" confidence=0.75')
        assert record.msg == "mail dev@example.com"

    def test_get_logger_accepts_extra_fields(self):
        """Test the adapter moves extra_fields into the record"""
        logger = get_logger("test.adapter")

        msg, kwargs = logger.process("hello", {"extra_fields": {"a": 1}})

        assert isinstance(logger, ContextLogger)
        assert msg == "hello"
        assert kwargs["extra"]["extra_fields"] == {"a": 1}

    def test_bound_context_merged(self):
        """Test fields bound on the logger are added under per-call fields"""
        logger = get_logger("test.adapter", component="classifier", preset="balanced")

        _, kwargs = logger.process("hello", {"extra_fields": {"preset": "debug"}})

        assert kwargs["extra"]["extra_fields"] == {"component": "classifier", "preset": "debug"}


class TestScrubFields:
    """Test scrubbing of structured extra fields"""

    def test_user_text_truncated(self):
        """Test query and message fields are shortened"""
        scrubber = SensitiveDataScrubber(max_text_chars=5)

        fields = scrubber.scrub_fields({"query": "abcdefgh", "message": "abc", "category": "abcdefgh"})

        assert fields == {"query": "abcde...[8 chars]", "message": "abc", "category": "abcdefgh"}

    def test_zero_length_keeps_text_whole(self):
        """Test a zero limit disables truncation"""
        scrubber = SensitiveDataScrubber(max_text_chars=0)

        assert scrubber.truncate("x" * 500) == "x" * 500

    def test_nested_values_scrubbed(self):
        """Test credentials inside nested dicts and lists are removed"""
        scrubber = SensitiveDataScrubber(max_text_chars=0)
        key = "sk-" + "a" * 24

        fields = scrubber.scrub_fields(
            {"changes": {"note": f"use {key}"}, "files": ["dev@example.com", 3]}
        )

        assert fields == {"changes": {"note": "use [API_KEY]"}, "files": ["[EMAIL]", 3]}

    def test_truncation_applies_when_scrubbing_disabled(self):
        """Test query length is capped even without scrubbing"""
        scrubber = SensitiveDataScrubber(enabled=False, max_text_chars=3)

        assert scrubber.scrub_fields({"query": "dev@example.com"}) == {"query": "dev...[15 chars]"}


class TestAnalysisDebug:
    """Test switching query analysis loggers to DEBUG"""

    def test_enable_and_disable(self):
        """Test analysis loggers follow the debug switch"""
        set_analysis_debug(True)
        assert all(logging.getLogger(name).level == logging.DEBUG for name in ANALYSIS_LOGGERS)

        set_analysis_debug(False)
        assert all(logging.getLogger(name).level == logging.NOTSET for name in ANALYSIS_LOGGERS)

    def test_classifier_debug_record_carries_short_query(self, caplog):
        """Test the classifier's debug record includes the query when enabled"""
        set_analysis_debug(True)
        with caplog.at_level(logging.DEBUG, logger="src.pipeline.classifier"):
            QueryIntentClassifier().analyze("Explain this function")

        records = [r for r in caplog.records if r.getMessage() == "Query analyzed"]
        assert len(records) == 1
        assert records[0].extra_fields["query"] == "Explain this function"
        assert records[0].extra_fields["category"] == "code_explanation"
