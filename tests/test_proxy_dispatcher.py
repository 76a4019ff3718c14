from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any
from urllib.error import URLError

import pytest

from kubeui.app.errors import UpstreamError, ValidationError
from kubeui.app.models.kubeconfig import CallingContext
from kubeui.app.models.resource_contracts import ProxyOperation, ResourceQuery, UpstreamResponse
from kubeui.app.services.proxy_dispatcher import ProxyDispatcher, encode_manifest
from kubeui.app.telemetry import TelemetryRecorder
from tests.conftest import RecordingTransport

SERVER = "https://cluster.example:6443"
DEPLOYMENT_QUERY = ResourceQuery(
    group="apps",
    version="v1",
    namespace="default",
    resource="deployments",
    name="web",
)
DEPLOYMENT_YAML = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
  namespace: default
  creationTimestamp: 2024-05-01T10:00:00Z
spec:
  replicas: 3
"""


class _CaptureLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def info(self, event: str, **fields: Any) -> None:
        name = fields.pop("telemetry_event")
        self.events.append((name, fields))


def _dispatcher(
    transport: RecordingTransport,
    *,
    auth_headers: Mapping[str, str] | None = None,
    telemetry: TelemetryRecorder | None = None,
) -> ProxyDispatcher:
    calling_context = CallingContext(
        context_name="test",
        server=SERVER,
        auth_headers=auth_headers if auth_headers is not None else {"Authorization": "Bearer t0k"},
    )
    return ProxyDispatcher(calling_context=calling_context, transport=transport, telemetry=telemetry)


def test_read_requests_yaml_with_auth_headers() -> None:
    transport = RecordingTransport()

    response = _dispatcher(transport).dispatch(ProxyOperation(verb="read", query=DEPLOYMENT_QUERY))

    assert response.status_code == 200
    assert response.body == b"kind: Pod\n"
    assert len(transport.calls) == 1
    call = transport.calls[0]
    assert call.method == "GET"
    assert call.url == f"{SERVER}/apis/apps/v1/namespaces/default/deployments/web"
    assert call.headers == {"Accept": "application/yaml", "Authorization": "Bearer t0k"}
    assert call.body is None


def test_read_without_token_sends_no_authorization_header() -> None:
    transport = RecordingTransport()

    _dispatcher(transport, auth_headers={}).dispatch(
        ProxyOperation(verb="read", query=ResourceQuery(resource="namespaces"))
    )

    assert transport.calls[0].headers == {"Accept": "application/yaml"}
    assert transport.calls[0].url == f"{SERVER}/api/v1/namespaces"


def test_replace_sends_json_body_with_put() -> None:
    transport = RecordingTransport()

    _dispatcher(transport).dispatch(
        ProxyOperation(verb="replace", query=DEPLOYMENT_QUERY, manifest_yaml=DEPLOYMENT_YAML)
    )

    call = transport.calls[0]
    assert call.method == "PUT"
    assert call.headers == {"Content-Type": "application/json", "Authorization": "Bearer t0k"}
    assert call.body is not None
    payload = json.loads(call.body)
    assert payload["kind"] == "Deployment"
    assert payload["spec"] == {"replicas": 3}
    assert payload["metadata"]["creationTimestamp"] == "2024-05-01T10:00:00Z"


def test_merge_patch_uses_patch_with_merge_patch_content_type() -> None:
    transport = RecordingTransport()

    _dispatcher(transport).dispatch(
        ProxyOperation(
            verb="merge_patch",
            query=DEPLOYMENT_QUERY,
            manifest_yaml="spec:\n  replicas: 1\n",
        )
    )

    call = transport.calls[0]
    assert call.method == "PATCH"
    assert call.headers["Content-Type"] == "application/merge-patch+json"
    assert call.body is not None
    assert json.loads(call.body) == {"spec": {"replicas": 1}}


@pytest.mark.parametrize("verb", ["replace", "merge_patch"])
def test_malformed_yaml_never_reaches_upstream(verb: str) -> None:
    transport = RecordingTransport()

    with pytest.raises(ValidationError, match="^Invalid YAML: "):
        _dispatcher(transport).dispatch(
            ProxyOperation(
                verb=verb,  # type: ignore[arg-type]
                query=DEPLOYMENT_QUERY,
                manifest_yaml="not: valid: yaml: :::",
            )
        )

    assert transport.calls == []


def test_missing_manifest_is_validation_error() -> None:
    transport = RecordingTransport()

    with pytest.raises(ValidationError, match="no 'yaml' field"):
        _dispatcher(transport).dispatch(ProxyOperation(verb="replace", query=DEPLOYMENT_QUERY))

    assert transport.calls == []


@pytest.mark.parametrize("manifest", [5, ["kind: Pod"], {"kind": "Pod"}, True])
def test_non_text_manifest_is_validation_error(manifest: object) -> None:
    transport = RecordingTransport()

    with pytest.raises(ValidationError, match="^Invalid YAML: the 'yaml' field must be text"):
        _dispatcher(transport).dispatch(
            ProxyOperation(verb="merge_patch", query=DEPLOYMENT_QUERY, manifest_yaml=manifest)
        )

    assert transport.calls == []


def test_upstream_error_statuses_are_relayed_verbatim() -> None:
    rejection = UpstreamResponse(
        status_code=409,
        body=b'{"kind":"Status","reason":"Conflict"}',
        content_type="application/json",
    )
    transport = RecordingTransport(response=rejection)

    response = _dispatcher(transport).dispatch(
        ProxyOperation(verb="replace", query=DEPLOYMENT_QUERY, manifest_yaml=DEPLOYMENT_YAML)
    )

    assert response == rejection


def test_connection_failure_becomes_upstream_error() -> None:
    transport = RecordingTransport(error=ConnectionRefusedError("connection refused"))

    with pytest.raises(UpstreamError) as excinfo:
        _dispatcher(transport).dispatch(ProxyOperation(verb="read", query=DEPLOYMENT_QUERY))

    assert str(excinfo.value) == "connection refused"
    assert "ConnectionRefusedError" in excinfo.value.stack
    assert len(transport.calls) == 1


def test_url_error_reason_is_reported() -> None:
    transport = RecordingTransport(error=URLError(TimeoutError("timed out")))

    with pytest.raises(UpstreamError, match="^timed out$"):
        _dispatcher(transport).dispatch(ProxyOperation(verb="read", query=DEPLOYMENT_QUERY))


def test_telemetry_records_upstream_outcome() -> None:
    telemetry_logger = _CaptureLogger()
    telemetry = TelemetryRecorder(enabled=True, logger=telemetry_logger)

    _dispatcher(RecordingTransport(), telemetry=telemetry).dispatch(
        ProxyOperation(verb="read", query=DEPLOYMENT_QUERY)
    )
    failing = RecordingTransport(error=ConnectionResetError("reset"))
    with pytest.raises(UpstreamError):
        _dispatcher(failing, telemetry=telemetry).dispatch(
            ProxyOperation(verb="read", query=DEPLOYMENT_QUERY)
        )

    assert [name for name, _ in telemetry_logger.events] == [
        "proxy.upstream.finish",
        "proxy.upstream.error",
    ]
    finish_attributes = telemetry_logger.events[0][1]
    assert finish_attributes["status_code"] == 200
    assert finish_attributes["path"] == "/apis/apps/v1/namespaces/default/deployments/web"
    assert telemetry_logger.events[1][1]["error_type"] == "ConnectionResetError"


def test_encode_manifest_handles_empty_document() -> None:
    assert encode_manifest("") == b"null"


def test_encode_manifest_rejects_values_json_cannot_hold() -> None:
    with pytest.raises(ValidationError, match="cannot be sent as JSON"):
        encode_manifest("value: .nan\n")
