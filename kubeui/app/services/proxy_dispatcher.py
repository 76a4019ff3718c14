from __future__ import annotations

import json
import logging
import traceback
from time import perf_counter
from typing import Any

import yaml

from kubeui.app.errors import UpstreamError, ValidationError
from kubeui.app.models.kubeconfig import CallingContext
from kubeui.app.models.resource_contracts import (
    MERGE_PATCH_CONTENT_TYPE,
    READ_ACCEPT,
    REPLACE_CONTENT_TYPE,
    ProxyOperation,
    ProxyVerb,
    UpstreamResponse,
)
from kubeui.app.services.resource_paths import build_path
from kubeui.app.services.upstream_transport import UpstreamTransport
from kubeui.app.telemetry import TelemetryRecorder, UpstreamCallEvent

LOGGER = logging.getLogger("kubeui.proxy")

_HTTP_METHODS: dict[ProxyVerb, str] = {
    "read": "GET",
    "replace": "PUT",
    "merge_patch": "PATCH",
}
_WRITE_CONTENT_TYPES: dict[ProxyVerb, str] = {
    "replace": REPLACE_CONTENT_TYPE,
    "merge_patch": MERGE_PATCH_CONTENT_TYPE,
}
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as strings, so every value maps onto JSON."""


_ManifestLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class ProxyDispatcher:
    def __init__(
        self,
        *,
        calling_context: CallingContext,
        transport: UpstreamTransport,
        telemetry: TelemetryRecorder | None = None,
    ) -> None:
        self._calling_context = calling_context
        self._transport = transport
        self._telemetry = telemetry if telemetry is not None else TelemetryRecorder.disabled()

    @property
    def calling_context(self) -> CallingContext:
        return self._calling_context

    def dispatch(self, operation: ProxyOperation) -> UpstreamResponse:
        """Run one proxied operation against the API server.

        Write bodies are decoded before anything is sent, so a bad manifest
        never reaches the network. Any status the API server answers with is
        returned as-is.

        Raises:
            ValidationError: the manifest is missing or is not decodable YAML.
            UpstreamError: no response could be obtained from the API server.
        """
        path = build_path(operation.query)
        method = _HTTP_METHODS[operation.verb]
        headers: dict[str, str] = {}
        body: bytes | None = None

        if operation.verb == "read":
            headers["Accept"] = READ_ACCEPT
        else:
            body = encode_manifest(operation.manifest_yaml)
            headers["Content-Type"] = _WRITE_CONTENT_TYPES[operation.verb]
        headers.update(self._calling_context.auth_headers)

        LOGGER.info("[%s] %s", method, path)
        started_at = perf_counter()
        try:
            response = self._transport.send(
                method,
                f"{self._calling_context.server}{path}",
                headers=headers,
                body=body,
            )
        except OSError as exc:
            message = _describe_transport_error(exc)
            LOGGER.error("[%s] %s failed: %s", method, path, message, exc_info=True)
            self._telemetry.record(
                UpstreamCallEvent(
                    outcome="error",
                    verb=operation.verb,
                    path=path,
                    duration_ms=_elapsed_ms(started_at),
                    error_type=type(exc).__name__,
                )
            )
            raise UpstreamError(message, stack=_format_stack(exc)) from exc

        LOGGER.info("[%s] %s -> %s", method, path, response.status_code)
        self._telemetry.record(
            UpstreamCallEvent(
                outcome="finish",
                verb=operation.verb,
                path=path,
                duration_ms=_elapsed_ms(started_at),
                status_code=response.status_code,
            )
        )
        return response


def encode_manifest(manifest_yaml: Any) -> bytes:
    """Decode a YAML manifest and re-encode it as the JSON request body."""
    if manifest_yaml is None:
        raise ValidationError("Invalid YAML: request body has no 'yaml' field.")
    if not isinstance(manifest_yaml, str):
        raise ValidationError(
            f"Invalid YAML: the 'yaml' field must be text, not {type(manifest_yaml).__name__}."
        )
    try:
        document: Any = yaml.load(manifest_yaml, Loader=_ManifestLoader)
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML: {exc}") from exc
    try:
        return json.dumps(document, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid YAML: document cannot be sent as JSON ({exc})") from exc


def _describe_transport_error(exc: OSError) -> str:
    # URLError keeps the socket/TLS failure in `reason`.
    reason = getattr(exc, "reason", None)
    if reason:
        return str(reason)
    return str(exc) or type(exc).__name__


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)
