from __future__ import annotations

import base64
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
import yaml
from fastapi.testclient import TestClient

from kubeui.app.dependencies import get_calling_context, get_dispatcher, reset_cached_dependencies
from kubeui.app.main import create_app
from kubeui.app.models.resource_contracts import UpstreamResponse
from kubeui.app.services.proxy_dispatcher import ProxyDispatcher

API_SERVER = "https://api.test.local:6443"
TEST_TOKEN = "test-bearer-token"


def b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def kubeconfig_document(**overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "admin",
        "contexts": [
            {"name": "admin", "context": {"cluster": "test-cluster", "user": "admin-user"}},
        ],
        "clusters": [
            {"name": "test-cluster", "cluster": {"server": API_SERVER}},
        ],
        "users": [
            {"name": "admin-user", "user": {"token": TEST_TOKEN}},
        ],
    }
    document.update(overrides)
    return document


def write_kubeconfig(path: Path, document: Mapping[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(dict(document), sort_keys=False), encoding="utf-8")
    return path


@dataclass(frozen=True)
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | None


@dataclass
class RecordingTransport:
    response: UpstreamResponse = field(
        default_factory=lambda: UpstreamResponse(
            status_code=200,
            body=b"kind: Pod\n",
            content_type="application/yaml",
        )
    )
    error: OSError | None = None
    calls: list[RecordedCall] = field(default_factory=list)

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> UpstreamResponse:
        self.calls.append(RecordedCall(method=method, url=url, headers=dict(headers), body=body))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def kubeconfig_file(tmp_path: Path) -> Path:
    return write_kubeconfig(tmp_path / "kube" / "config", kubeconfig_document())


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def runtime_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kubeconfig_file: Path,
) -> Path:
    data_dir = tmp_path / "runtime-data"
    monkeypatch.setenv("KUBECONFIG", str(kubeconfig_file))
    monkeypatch.setenv("KUBEUI_LOG_DIR", str(data_dir / "logs"))
    monkeypatch.setenv("KUBEUI_WEB_UI_DIST_DIR", str(tmp_path / "dist"))
    monkeypatch.setenv("KUBEUI_TELEMETRY_ENABLED", "0")
    monkeypatch.delenv("KUBEUI_KUBECONFIG", raising=False)
    monkeypatch.delenv("SKIP_TLS_VERIFY", raising=False)
    return data_dir


@pytest.fixture
def client(runtime_env: Path, transport: RecordingTransport) -> Iterator[TestClient]:
    _ = runtime_env
    reset_cached_dependencies()

    app = create_app()
    app.dependency_overrides[get_dispatcher] = lambda: ProxyDispatcher(
        calling_context=get_calling_context(),
        transport=transport,
    )
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
