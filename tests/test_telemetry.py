"""Tests for tracer setup.

Run:
    pytest tests/test_telemetry.py -v
"""

from opentelemetry import trace

from inkwell.telemetry import current_trace_id, get_tracer, init_telemetry


def test_init_installs_provider_once():
    init_telemetry()
    provider = trace.get_tracer_provider()
    init_telemetry()
    assert trace.get_tracer_provider() is provider


def test_trace_id_only_inside_a_span():
    init_telemetry()
    assert current_trace_id() == ""
    with get_tracer().start_as_current_span("inkwell.test"):
        trace_id = current_trace_id()
    assert len(trace_id) == 32
    assert trace_id != "0" * 32
