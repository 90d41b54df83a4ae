"""Tests for agent counters."""

from cave.lib.metrics import AgentMetrics


def test_record_report():
    metrics = AgentMetrics()

    metrics.record_report(sent=True)
    metrics.record_report(sent=False)
    metrics.record_report(sent=False)

    snapshot = metrics.snapshot()
    assert snapshot["reports_sent"] == 1
    assert snapshot["reports_dropped"] == 2
    assert snapshot["last_report_time"] is not None


def test_record_commands_and_sensor_failures():
    metrics = AgentMetrics()

    metrics.record_command(succeeded=True)
    metrics.record_command(succeeded=False)
    metrics.record_sensor_failure()

    assert metrics.snapshot() == {
        "reports_sent": 0,
        "reports_dropped": 0,
        "sensor_failures": 1,
        "commands_succeeded": 1,
        "commands_rejected": 1,
        "last_report_time": None,
    }
