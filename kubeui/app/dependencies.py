from __future__ import annotations

from functools import lru_cache

from kubeui.app.config import AppSettings, load_settings
from kubeui.app.models.kubeconfig import CallingContext
from kubeui.app.services.calling_context import load_calling_context
from kubeui.app.services.proxy_dispatcher import ProxyDispatcher
from kubeui.app.services.upstream_transport import UpstreamTransport, UrllibTransport
from kubeui.app.telemetry import TelemetryRecorder, build_telemetry_recorder


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_calling_context() -> CallingContext:
    settings = get_settings()
    return load_calling_context(settings.kubeconfig_path, verify_tls=settings.verify_tls)


@lru_cache(maxsize=1)
def get_transport() -> UpstreamTransport:
    settings = get_settings()
    return UrllibTransport.from_calling_context(
        get_calling_context(),
        timeout_seconds=settings.upstream_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_dispatcher() -> ProxyDispatcher:
    return ProxyDispatcher(
        calling_context=get_calling_context(),
        transport=get_transport(),
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryRecorder:
    settings = get_settings()
    return build_telemetry_recorder(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_dispatcher.cache_clear()
    get_transport.cache_clear()
    get_calling_context.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
