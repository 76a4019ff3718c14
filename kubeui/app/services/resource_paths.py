from __future__ import annotations

from kubeui.app.models.resource_contracts import ResourceQuery

CORE_API_PREFIX = "/api/v1"
NAMED_GROUP_PREFIX = "/apis"


def build_path(query: ResourceQuery) -> str:
    """Map a resource descriptor to the API server URL path.

    Named groups live under `/apis/{group}/{version}` and need both fields;
    anything else addresses the core group at `/api/v1`. The remaining
    segments are appended in a fixed order, each only when set, so one
    descriptor covers list, object and subresource endpoints. Segment
    contents are passed through untouched.
    """
    if query.group and query.version:
        segments = [f"{NAMED_GROUP_PREFIX}/{query.group}/{query.version}"]
    else:
        segments = [CORE_API_PREFIX]

    if query.namespace:
        segments.append(f"/namespaces/{query.namespace}")
    for value in (query.resource, query.name, query.subresource):
        if value:
            segments.append(f"/{value}")
    return "".join(segments)
