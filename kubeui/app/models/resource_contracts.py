from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

ProxyVerb = Literal["read", "replace", "merge_patch"]

READ_ACCEPT = "application/yaml"
REPLACE_CONTENT_TYPE = "application/json"
MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"


def _empty_as_absent(value: Any) -> Any:
    # Only the empty string means "not given"; other text is used verbatim.
    if value == "":
        return None
    return value


class ResourceQuery(BaseModel):
    """Sparse descriptor of an API server resource; every field is optional."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    group: str | None = None
    version: str | None = None
    namespace: str | None = None
    resource: str | None = None
    name: str | None = None
    subresource: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _empty_is_absent(cls, value: Any) -> Any:
        return _empty_as_absent(value)


class ManifestRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Any JSON value is accepted here; non-text manifests are rejected as invalid YAML.
    yaml: Any = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    stack: str | None = None


@dataclass(frozen=True)
class ProxyOperation:
    verb: ProxyVerb
    query: ResourceQuery
    manifest_yaml: Any = None


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    body: bytes
    content_type: str | None = None
