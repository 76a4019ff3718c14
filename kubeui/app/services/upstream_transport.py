from __future__ import annotations

import ssl
import tempfile
from collections.abc import Mapping
from http.client import HTTPException
from pathlib import Path
from typing import Protocol
from urllib.error import HTTPError
from urllib.request import HTTPSHandler, OpenerDirector, Request, build_opener

from kubeui.app.errors import ConfigError
from kubeui.app.models.kubeconfig import CallingContext, ClientIdentity
from kubeui.app.models.resource_contracts import UpstreamResponse

USER_AGENT = "kubeui/0.1"


class UpstreamTransport(Protocol):
    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> UpstreamResponse:
        ...


class UrllibTransport:
    """Sends requests to the API server through a private urllib opener.

    TLS settings live in the opener's own SSL context, so other outbound
    calls made by the process keep the interpreter defaults. Error statuses
    are returned like any other response; only failures to get a response
    at all raise (as `OSError`).
    """

    def __init__(self, *, ssl_context: ssl.SSLContext, timeout_seconds: float) -> None:
        self._opener: OpenerDirector = build_opener(HTTPSHandler(context=ssl_context))
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_calling_context(
        cls,
        calling_context: CallingContext,
        *,
        timeout_seconds: float,
    ) -> UrllibTransport:
        return cls(
            ssl_context=build_ssl_context(calling_context),
            timeout_seconds=timeout_seconds,
        )

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> UpstreamResponse:
        request_headers = {"User-Agent": USER_AGENT, **dict(headers)}
        request = Request(url=url, data=body, headers=request_headers, method=method)
        try:
            with self._opener.open(request, timeout=self._timeout_seconds) as response:
                return UpstreamResponse(
                    status_code=response.status,
                    body=response.read(),
                    content_type=response.headers.get("Content-Type"),
                )
        except HTTPError as exc:
            try:
                error_body = exc.read() if exc.fp else b""
            finally:
                exc.close()
            return UpstreamResponse(
                status_code=exc.code,
                body=error_body,
                content_type=exc.headers.get("Content-Type") if exc.headers else None,
            )
        except HTTPException as exc:
            raise ConnectionError(f"Invalid HTTP response from API server: {exc!r}") from exc


def build_ssl_context(calling_context: CallingContext) -> ssl.SSLContext:
    """Build the SSL context for one transport from the resolved credentials.

    Without CA data the system trust store is used. With `verify_tls` off,
    hostname and certificate checks are disabled for this context only.
    """
    if calling_context.verify_tls:
        try:
            context = ssl.create_default_context(cadata=_ca_text(calling_context.ca_data))
        except (ssl.SSLError, ValueError) as exc:
            raise ConfigError(f"Certificate authority data could not be loaded: {exc}") from exc
    else:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if calling_context.client_identity is not None:
        _load_client_identity(context, calling_context.client_identity)
    return context


def _ca_text(ca_data: bytes | None) -> str | bytes | None:
    if ca_data is None:
        return None
    try:
        return ca_data.decode("ascii")
    except UnicodeDecodeError:
        # DER-encoded CA
        return ca_data


def _load_client_identity(context: ssl.SSLContext, identity: ClientIdentity) -> None:
    # load_cert_chain only accepts file paths; the files live just long enough to be read.
    with tempfile.TemporaryDirectory(prefix="kubeui-identity-") as workdir:
        cert_path = Path(workdir) / "client.crt"
        key_path = Path(workdir) / "client.key"
        cert_path.write_bytes(identity.certificate)
        key_path.write_bytes(identity.key)
        try:
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except (ssl.SSLError, OSError) as exc:
            raise ConfigError(f"Client certificate and key could not be loaded: {exc}") from exc
