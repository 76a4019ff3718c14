from __future__ import annotations


class KubeUiError(RuntimeError):
    pass


class ConfigError(KubeUiError):
    """The kubeconfig could not be turned into a calling context."""


class ValidationError(KubeUiError):
    """An inbound manifest could not be decoded; nothing was sent upstream."""


class UpstreamError(KubeUiError):
    def __init__(self, message: str, *, stack: str) -> None:
        super().__init__(message)
        self.stack = stack
