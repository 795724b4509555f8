# tests/test_telemetry.py — Tracing setup
import telemetry


def test_disabled_without_endpoint():
    assert telemetry.setup_telemetry(None, "2.0.0", endpoint="") is None
