from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from kubeui.app.dependencies import get_dispatcher
from kubeui.app.models.resource_contracts import (
    ErrorResponse,
    ManifestRequest,
    ProxyOperation,
    ProxyVerb,
    ResourceQuery,
)
from kubeui.app.services.proxy_dispatcher import ProxyDispatcher

router = APIRouter(prefix="/api")

_RELAYED_RESPONSE: dict[int | str, dict[str, Any]] = {
    "default": {"description": "Status and body relayed unchanged from the API server."},
}
_READ_RESPONSES: dict[int | str, dict[str, Any]] = {
    **_RELAYED_RESPONSE,
    500: {"model": ErrorResponse, "description": "The API server could not be reached."},
}
_WRITE_RESPONSES: dict[int | str, dict[str, Any]] = {
    **_READ_RESPONSES,
    400: {"model": ErrorResponse, "description": "The submitted YAML could not be decoded."},
}


def resource_query(
    group: Annotated[str | None, Query()] = None,
    version: Annotated[str | None, Query()] = None,
    namespace: Annotated[str | None, Query()] = None,
    resource: Annotated[str | None, Query()] = None,
    name: Annotated[str | None, Query()] = None,
    subresource: Annotated[str | None, Query()] = None,
) -> ResourceQuery:
    return ResourceQuery(
        group=group,
        version=version,
        namespace=namespace,
        resource=resource,
        name=name,
        subresource=subresource,
    )


def _relay(
    verb: ProxyVerb,
    query: ResourceQuery,
    dispatcher: ProxyDispatcher,
    manifest: ManifestRequest | None = None,
) -> Response:
    context_tokens = bind_contextvars(proxy_verb=verb)
    try:
        upstream = dispatcher.dispatch(
            ProxyOperation(
                verb=verb,
                query=query,
                manifest_yaml=manifest.yaml if manifest is not None else None,
            )
        )
    finally:
        reset_contextvars(**context_tokens)
    return Response(
        content=upstream.body,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
    )


@router.get(
    "/resource",
    response_class=Response,
    responses=_READ_RESPONSES,
    tags=["resources"],
    operation_id="read_resource",
)
def read_resource(
    query: Annotated[ResourceQuery, Depends(resource_query)],
    dispatcher: Annotated[ProxyDispatcher, Depends(get_dispatcher)],
) -> Response:
    """Fetch a resource (or list) from the API server as YAML."""
    return _relay("read", query, dispatcher)


@router.put(
    "/resource",
    response_class=Response,
    responses=_WRITE_RESPONSES,
    tags=["resources"],
    operation_id="replace_resource",
)
def replace_resource(
    query: Annotated[ResourceQuery, Depends(resource_query)],
    dispatcher: Annotated[ProxyDispatcher, Depends(get_dispatcher)],
    manifest: Annotated[ManifestRequest | None, Body()] = None,
) -> Response:
    """Replace a resource with the object described by the submitted YAML."""
    return _relay("replace", query, dispatcher, manifest)


@router.patch(
    "/resource",
    response_class=Response,
    responses=_WRITE_RESPONSES,
    tags=["resources"],
    operation_id="merge_patch_resource",
)
def merge_patch_resource(
    query: Annotated[ResourceQuery, Depends(resource_query)],
    dispatcher: Annotated[ProxyDispatcher, Depends(get_dispatcher)],
    manifest: Annotated[ManifestRequest | None, Body()] = None,
) -> Response:
    """Merge-patch a resource with the fields described by the submitted YAML."""
    return _relay("merge_patch", query, dispatcher, manifest)
