# tests/test_infrastructure.py
"""Tests for settings, logging and in-process metrics"""
import json
import logging

import pytest


class TestMetrics:
    def test_metrics_counter_increment(self):
        from screenflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("test_counter", 1)
        collector.inc_counter("test_counter", 2)

        metrics = collector.get_metrics()
        assert metrics["counters"]["test_counter"] == 3

    def test_metrics_histogram_observe(self):
        from screenflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.observe_histogram("test_histogram", 0.1)
        collector.observe_histogram("test_histogram", 0.2)
        collector.observe_histogram("test_histogram", 0.5)

        stats = collector.get_metrics()["histograms"]["test_histogram"]
        assert stats["count"] == 3
        assert stats["min"] == 0.1
        assert stats["max"] == 0.5

    def test_metrics_with_labels(self):
        from screenflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("runs", 1, {"app": "quiz"})
        collector.inc_counter("runs", 2, {"app": "survey"})

        counters = collector.get_metrics()["counters"]
        assert counters["runs{app=quiz}"] == 1
        assert counters["runs{app=survey}"] == 2

    def test_disabled_metrics_are_dropped(self, monkeypatch):
        from screenflow.config import settings
        from screenflow.infra.metrics import AppMetrics, get_metrics_collector

        monkeypatch.setattr(settings, "enable_metrics", False)
        AppMetrics.run_started("quiz")

        assert get_metrics_collector().get_metrics()["counters"] == {}

    def test_timer_observes_duration(self):
        from screenflow.infra.metrics import AppMetrics, get_metrics_collector

        with AppMetrics.track_run_time("quiz"):
            pass

        stats = get_metrics_collector().get_metrics()["histograms"]["run_duration_seconds{app=quiz}"]
        assert stats["count"] == 1
        assert stats["min"] >= 0


class TestSettings:
    def test_defaults(self):
        from screenflow.config import Settings

        s = Settings(_env_file=None)
        assert s.app_env == "dev"
        assert s.reset_keyword == "!reset"
        assert s.sandbox_timeout_seconds == 10.0

    def test_invalid_app_env_rejected(self):
        from pydantic import ValidationError
        from screenflow.config import Settings

        with pytest.raises(ValidationError):
            Settings(app_env="banana", _env_file=None)

    def test_production_requires_sandbox_settings(self):
        from screenflow.config import Settings, validate_or_warn

        s = Settings(app_env="prod", sandbox_url=None, sandbox_token=None, _env_file=None)
        assert s.validate_required_for_production() == ["sandbox_url", "sandbox_token"]
        with pytest.raises(RuntimeError, match="sandbox_url"):
            validate_or_warn(s)

    def test_risky_config_warnings(self):
        from screenflow.config import Settings, warn_on_risky_config

        s = Settings(sandbox_url="http://sandbox/api", sandbox_token=None, _env_file=None)
        warnings = warn_on_risky_config(s)
        assert any("sandbox_token" in w for w in warnings)

    def test_dev_does_not_require_sandbox(self):
        from screenflow.config import Settings

        s = Settings(app_env="dev", _env_file=None)
        assert s.validate_required_for_production() == []


class TestLogging:
    def make_record(self, **extra):
        record = logging.LogRecord("screenflow.test", logging.INFO, __file__, 1, "hello %s", ("ann",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_masks_addr(self):
        from screenflow.infra.logging_config import JSONFormatter

        record = self.make_record(addr="+27123456789", state="states:start", message_id="m1")
        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello ann"
        assert data["addr"] == "+271****89"
        assert data["state"] == "states:start"
        assert data["message_id"] == "m1"

    def test_console_formatter_context(self):
        from screenflow.infra.logging_config import ConsoleFormatter

        line = ConsoleFormatter().format(self.make_record(state="states:start"))
        assert "state=states:start" in line
        assert "hello ann" in line

    def test_log_context_adds_fields(self, caplog):
        from screenflow.infra.logging_config import LogContext

        log = LogContext(logging.getLogger("screenflow.test"), addr="+27123456789")
        log.bind(state="states:menu", message_id=None)

        with caplog.at_level(logging.INFO, logger="screenflow.test"):
            log.info("Switched")

        record = caplog.records[-1]
        assert record.addr == "+27123456789"
        assert record.state == "states:menu"
        assert not hasattr(record, "message_id")

    def test_mask_addr(self):
        from screenflow.infra.logging_config import mask_addr

        assert mask_addr("+27123456789") == "+271****89"
        assert mask_addr("12345") == "12345"
        assert mask_addr(None) == ""
