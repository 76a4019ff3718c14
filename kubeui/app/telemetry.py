"""Telemetry events for the proxy.

Two event families exist: `http.request.*`, recorded by the request
middleware, and `proxy.upstream.*`, recorded by the dispatcher for every call
against the API server. Events are typed records of routing metadata only;
headers, manifests and credentials have no field to travel in.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal, Protocol

import structlog

from kubeui.app.models.resource_contracts import ProxyVerb

TELEMETRY_LOGGER_NAME = "kubeui.telemetry"
_MAX_TEXT_LENGTH = 160

RequestPhase = Literal["start", "finish", "error"]
UpstreamOutcome = Literal["finish", "error"]


@dataclass(frozen=True)
class HttpRequestEvent:
    phase: RequestPhase
    request_id: str
    method: str
    path: str
    duration_ms: int | None = None
    status_code: int | None = None
    error_type: str | None = None

    @property
    def name(self) -> str:
        return f"http.request.{self.phase}"


@dataclass(frozen=True)
class UpstreamCallEvent:
    outcome: UpstreamOutcome
    verb: ProxyVerb
    path: str
    duration_ms: int
    status_code: int | None = None
    error_type: str | None = None

    @property
    def name(self) -> str:
        return f"proxy.upstream.{self.outcome}"


TelemetryEvent = HttpRequestEvent | UpstreamCallEvent


class TelemetryLogger(Protocol):
    def info(self, event: str, **fields: Any) -> Any:
        ...


class TelemetryRecorder:
    """Writes events as `telemetry` lines on the telemetry logger."""

    def __init__(self, *, enabled: bool, logger: TelemetryLogger | None = None) -> None:
        self.enabled = enabled
        self._logger: TelemetryLogger = (
            logger if logger is not None else structlog.get_logger(TELEMETRY_LOGGER_NAME)
        )

    @classmethod
    def disabled(cls) -> TelemetryRecorder:
        return cls(enabled=False)

    def record(self, event: TelemetryEvent) -> None:
        if not self.enabled:
            return
        self._logger.info("telemetry", telemetry_event=event.name, **event_fields(event))


def build_telemetry_recorder(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryRecorder:
    return TelemetryRecorder(enabled=enabled and sink == "log")


def event_fields(event: TelemetryEvent) -> dict[str, str | int]:
    """Flatten an event into log fields, leaving out unset values."""
    fields: dict[str, str | int] = {}
    for key, value in asdict(event).items():
        if key in {"phase", "outcome"} or value is None:
            continue
        fields[key] = _clip(value) if isinstance(value, str) else value
    return fields


def _clip(text: str) -> str:
    # request ids come from clients and paths from the UI
    if len(text) <= _MAX_TEXT_LENGTH:
        return text
    return f"{text[:_MAX_TEXT_LENGTH]}..."
