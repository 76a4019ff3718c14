from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from kubeui.app.errors import ConfigError
from kubeui.app.models.kubeconfig import (
    CallingContext,
    ClientIdentity,
    ClusterRecord,
    KubeConfigDocument,
    NamedContext,
    UserRecord,
)

LOGGER = logging.getLogger("kubeui.kubeconfig")


def load_calling_context(path: Path, *, verify_tls: bool | None = None) -> CallingContext:
    """Read a kubeconfig file and resolve it into a calling context.

    Relative credential paths inside the file are resolved against the
    directory holding it, the way kubectl does.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Unable to read kubeconfig {path}: {exc.strerror or exc}") from exc
    return resolve_calling_context(raw, verify_tls=verify_tls, base_dir=path.parent)


def resolve_calling_context(
    kubeconfig: bytes | str,
    *,
    verify_tls: bool | None = None,
    base_dir: Path | None = None,
) -> CallingContext:
    """Resolve the active context of a kubeconfig document.

    The active context is `current-context` when set, otherwise the first
    listed context. Its cluster and user are looked up by exact name; CA,
    client certificate, client key and token each prefer inline data over a
    file reference. `verify_tls` defaults to enabled; passing False makes the
    transport accept any server certificate regardless of the CA.

    Raises:
        ConfigError: the document is malformed, a reference does not resolve,
            a credential file is unreadable, or only half of the client
            certificate/key pair is present.
    """
    document = parse_kubeconfig(kubeconfig)
    named_context = _select_context(document)
    cluster = _find_cluster(document, named_context.context.cluster)
    user = _find_user(document, named_context.context.user)

    ca_data = _read_inline_or_file(
        cluster,
        data_field="certificate_authority_data",
        file_field="certificate_authority",
        base_dir=base_dir,
    )
    certificate = _read_inline_or_file(
        user,
        data_field="client_certificate_data",
        file_field="client_certificate",
        base_dir=base_dir,
    )
    key = _read_inline_or_file(
        user,
        data_field="client_key_data",
        file_field="client_key",
        base_dir=base_dir,
    )
    token = _read_inline_or_file(
        user,
        data_field="token",
        file_field="token_file",
        base_dir=base_dir,
        inline_is_base64=False,
    )

    if (certificate is None) != (key is None):
        present, missing = (
            ("client certificate", "client key")
            if certificate is not None
            else ("client key", "client certificate")
        )
        raise ConfigError(
            f"User '{named_context.context.user}' has a {present} but no {missing}; "
            "both must be set or both omitted."
        )

    client_identity = (
        ClientIdentity(certificate=certificate, key=key)
        if certificate is not None and key is not None
        else None
    )
    auth_headers: dict[str, str] = {}
    if token is not None:
        bearer = token.decode("utf-8").strip()
        if bearer:
            auth_headers["Authorization"] = f"Bearer {bearer}"

    calling_context = CallingContext(
        context_name=named_context.name,
        server=cluster.server.rstrip("/"),
        ca_data=ca_data,
        verify_tls=True if verify_tls is None else verify_tls,
        client_identity=client_identity,
        auth_headers=auth_headers,
        namespace=named_context.context.namespace,
    )
    LOGGER.debug(
        "calling context resolved context=%s cluster=%s user=%s ca=%s client_cert=%s token=%s",
        named_context.name,
        named_context.context.cluster,
        named_context.context.user,
        ca_data is not None,
        client_identity is not None,
        bool(auth_headers),
    )
    return calling_context


def parse_kubeconfig(kubeconfig: bytes | str) -> KubeConfigDocument:
    try:
        raw = yaml.safe_load(kubeconfig)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Kubeconfig is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Kubeconfig must be a mapping with contexts, clusters and users.")

    try:
        return KubeConfigDocument.model_validate(raw)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigError(f"Kubeconfig has an unexpected structure: {problems}") from exc


def _select_context(document: KubeConfigDocument) -> NamedContext:
    if not document.contexts:
        raise ConfigError("Kubeconfig does not define any contexts.")

    wanted = (document.current_context or "").strip()
    if not wanted:
        return document.contexts[0]
    for named_context in document.contexts:
        if named_context.name == wanted:
            return named_context
    raise ConfigError(f"current-context '{wanted}' does not match any context.")


def _find_cluster(document: KubeConfigDocument, name: str) -> ClusterRecord:
    for named_cluster in document.clusters:
        if named_cluster.name == name:
            return named_cluster.cluster
    raise ConfigError(f"Context references unknown cluster '{name}'.")


def _find_user(document: KubeConfigDocument, name: str) -> UserRecord:
    for named_user in document.users:
        if named_user.name == name:
            return named_user.user
    raise ConfigError(f"Context references unknown user '{name}'.")


def _read_inline_or_file(
    record: BaseModel,
    *,
    data_field: str,
    file_field: str,
    base_dir: Path | None,
    inline_is_base64: bool = True,
) -> bytes | None:
    """Return the credential held by a data/file field pair; inline data wins."""
    inline_value = _present(getattr(record, data_field))
    if inline_value is not None:
        if not inline_is_base64:
            return inline_value.encode("utf-8")
        try:
            return base64.b64decode("".join(inline_value.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigError(
                f"{_kubeconfig_key(record, data_field)} is not valid base64: {exc}"
            ) from exc

    file_value = _present(getattr(record, file_field))
    if file_value is None:
        return None
    path = Path(file_value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ConfigError(
            f"Unable to read {_kubeconfig_key(record, file_field)} {path}: {exc.strerror or exc}"
        ) from exc


def _present(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _kubeconfig_key(record: BaseModel, field_name: str) -> str:
    alias = type(record).model_fields[field_name].alias
    return alias or field_name
