from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContextRef(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    cluster: str
    user: str
    namespace: str | None = None


class NamedContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    context: ContextRef


class ClusterRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    server: str
    certificate_authority_data: str | None = Field(
        default=None, alias="certificate-authority-data"
    )
    certificate_authority: str | None = Field(default=None, alias="certificate-authority")


class NamedCluster(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    cluster: ClusterRecord


class UserRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    client_certificate_data: str | None = Field(default=None, alias="client-certificate-data")
    client_certificate: str | None = Field(default=None, alias="client-certificate")
    client_key_data: str | None = Field(default=None, alias="client-key-data")
    client_key: str | None = Field(default=None, alias="client-key")
    token: str | None = None
    token_file: str | None = Field(default=None, alias="tokenFile")


class NamedUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    user: UserRecord = Field(default_factory=UserRecord)

    @field_validator("user", mode="before")
    @classmethod
    def _empty_user(cls, value: Any) -> Any:
        # `user:` with no credentials parses as null.
        return {} if value is None else value


class KubeConfigDocument(BaseModel):
    """The subset of a kubeconfig file needed to reach one API server."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    current_context: str | None = Field(default=None, alias="current-context")
    contexts: list[NamedContext] = Field(default_factory=list)
    clusters: list[NamedCluster] = Field(default_factory=list)
    users: list[NamedUser] = Field(default_factory=list)

    @field_validator("contexts", "clusters", "users", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value


@dataclass(frozen=True)
class ClientIdentity:
    certificate: bytes
    key: bytes


@dataclass(frozen=True)
class CallingContext:
    """Everything needed to make an authenticated call to the API server.

    Built once at startup and shared read-only by every request.
    `verify_tls=False` tells the transport to accept any server certificate,
    whatever `ca_data` holds.
    """

    context_name: str
    server: str
    ca_data: bytes | None = None
    verify_tls: bool = True
    client_identity: ClientIdentity | None = None
    auth_headers: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    namespace: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.auth_headers, MappingProxyType):
            object.__setattr__(self, "auth_headers", MappingProxyType(dict(self.auth_headers)))
