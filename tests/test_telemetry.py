from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sermon_catalog.telemetry import (
    StructuredLogTelemetrySink,
    TelemetryClient,
    build_telemetry_client,
)


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def test_telemetry_client_redacts_sensitive_fields() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(
        "ingestion.strategy.finish",
        search_query="Grace Christian Sermons",
        credential_name="YOUTUBE_API_KEY_GRACE",
        api_key="super-secret",
        page_token="CAUQAA",
        upserted=3,
    )

    assert len(sink.events) == 1
    event_name, attributes = sink.events[0]
    assert event_name == "ingestion.strategy.finish"
    assert attributes["search_query"] == "Grace Christian Sermons"
    assert attributes["credential_name"] == "YOUTUBE_API_KEY_GRACE"
    assert attributes["upserted"] == 3
    assert attributes["api_key"] == "[redacted]"
    assert attributes["page_token"] == "[redacted]"


def test_telemetry_client_truncates_and_flattens_values() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit("http.request.finish", path="x" * 500, details={"nested": True}, skipped=None)

    _, attributes = sink.events[0]
    assert len(attributes["path"]) == 163
    assert attributes["path"].endswith("...")
    assert attributes["details"] == "dict"
    assert attributes["skipped"] is None


def test_disabled_telemetry_client_does_not_emit() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=False, sink=sink)

    client.emit("reconciliation.run.start", run_id="rec_1")
    assert sink.events == []


def test_build_telemetry_client_selects_sink() -> None:
    assert build_telemetry_client(enabled=True, sink="none").enabled is False
    assert build_telemetry_client(enabled=True, sink="none").sink is None
    assert build_telemetry_client(enabled=False, sink="log").enabled is False

    log_client = build_telemetry_client(enabled=True, sink="log")
    assert log_client.enabled is True
    assert isinstance(log_client.sink, StructuredLogTelemetrySink)
