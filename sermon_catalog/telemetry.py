from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog

# Substrings that mark an attribute as carrying a YouTube key or page cursor.
_REDACTED_KEY_PARTS = ("api_key", "developer_key", "secret", "token", "authorization")
_MAX_STRING_LENGTH = 160

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class StructuredLogTelemetrySink:
    """Writes events to the ``sermon_catalog.telemetry`` logger (its own log file)."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("sermon_catalog.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink | None = None

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False)

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled or self.sink is None:
            return
        self.sink.emit(event_name=event_name, attributes=_scrub(attributes))


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    return TelemetryClient.disabled()


def _scrub(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    scrubbed: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        # credential_name and friends name a key without revealing it.
        if not key.endswith("_name") and any(part in key for part in _REDACTED_KEY_PARTS):
            scrubbed[key] = "[redacted]"
        else:
            scrubbed[key] = _flatten(raw_value)
    return scrubbed


def _flatten(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if not isinstance(value, str):
        return type(value).__name__
    compact = " ".join(value.split())
    if len(compact) > _MAX_STRING_LENGTH:
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    return compact
