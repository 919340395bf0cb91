from __future__ import annotations

import io
import json
import logging

from raydium_pool_tracker.config.settings import MonitoringConfig
from raydium_pool_tracker.monitoring import logger as logger_module
from raydium_pool_tracker.monitoring.logger import (
    configure_logging,
    correlation_scope,
    current_correlation_id,
    get_logger,
    pool_scope,
)
from raydium_pool_tracker.monitoring.metrics import METRICS


def test_prometheus_export_sanitizes_metric_names() -> None:
    METRICS.reset()
    METRICS.increment("reconcile.persisted")
    METRICS.increment("reconcile.failed", 2)
    METRICS.gauge("worker.last_batch_size", 3)
    METRICS.observe("reconcile.slippage_pct", 0.5)
    output = METRICS.export_prometheus()
    lines = [line for line in output.splitlines() if line]
    assert any(line.startswith("# TYPE reconcile_persisted counter") for line in lines)
    assert "reconcile.persisted" not in output
    assert any("reconcile_failed 2" in line for line in lines)
    assert any("worker_last_batch_size" in line for line in lines)
    assert any("reconcile_slippage_pct" in line for line in lines)
    METRICS.reset()


def test_timer_records_duration() -> None:
    METRICS.reset()
    with METRICS.timer("reconcile.duration_ms"):
        pass
    METRICS.increment("reconcile.persisted")
    METRICS.increment("reconcile.rejected")
    snapshot = METRICS.snapshot()
    assert "reconcile.duration_ms" in snapshot["histograms"]
    assert snapshot["counters"] == {"reconcile.persisted": 1.0, "reconcile.rejected": 1.0}
    METRICS.reset()


def test_structured_logs_carry_signature_and_pool(monkeypatch) -> None:
    monkeypatch.setattr(logger_module, "_LOGGING_CONFIGURED", False)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    stream = io.StringIO()
    try:
        configure_logging(MonitoringConfig(log_level="INFO"), stream=stream)
        log = get_logger("raydium_pool_tracker.tests")
        with correlation_scope("sig-abc"):
            assert current_correlation_id() == "sig-abc"
            with pool_scope("pool-xyz"):
                log.info("Updated pool")
        assert current_correlation_id() == "-"
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    record = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert record["message"] == "Updated pool"
    assert record["signature"] == "sig-abc"
    assert record["pool"] == "pool-xyz"
    assert record["level"] == "INFO"
