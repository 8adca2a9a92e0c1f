"""
HTTP client for the resource store service.

Implements :class:`ResourceStore` on top of the routes in
:mod:`fedhcp.store.api`, mapping HTTP errors back onto the store
exception hierarchy.
"""

import httpx

from fedhcp.models.enums import ResourceKind
from fedhcp.models.resources import Resource, resource_from_dict
from fedhcp.store.base import (
    REASON_ALREADY_EXISTS,
    REASON_CONFLICT,
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceStore,
    StoreError,
)
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 5.0


class HttpResourceStore(ResourceStore):
    """
    Resource store backed by a remote store service.

    Args:
        base_url: Service URL, e.g. ``http://127.0.0.1:8080``.
        client: Optional preconfigured ``httpx.Client`` (its base URL is used as is).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = "",
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        context: str,
        kind: ResourceKind,
        namespace: str,
        name: str,
        **kwargs,
    ) -> httpx.Response:
        try:
            response = self.client.request(method, f"/api{path}", **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e, context, kind, namespace, name)
        except httpx.RequestError as e:
            logger.error(f"Request error on {context}: {e}")
            raise StoreError(f"Network error on {context}: {e}")

    @staticmethod
    def _handle_http_error(
        e: httpx.HTTPStatusError,
        context: str,
        kind: ResourceKind,
        namespace: str,
        name: str,
    ) -> None:
        status = e.response.status_code
        try:
            detail = e.response.json().get("detail")
        except ValueError:
            detail = e.response.text

        reason = detail.get("reason") if isinstance(detail, dict) else None
        kind_value = ResourceKind(kind).value

        if status == 404:
            raise NotFoundError(kind_value, namespace, name)
        if status == 409 and reason == REASON_ALREADY_EXISTS:
            raise AlreadyExistsError(kind_value, namespace, name)
        if status == 409 and reason == REASON_CONFLICT:
            raise ConflictError(kind_value, namespace, name)

        logger.error(f"HTTP {status} on {context}: {detail}")
        raise StoreError(f"HTTP {status} on {context}: {detail}")

    # =========================================================================
    # ResourceStore
    # =========================================================================

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Resource:
        kind = ResourceKind(kind)
        response = self._request(
            "GET",
            f"/{kind.value}/{name}",
            f"get {kind.value} {namespace}/{name}",
            kind,
            namespace,
            name,
            params={"namespace": namespace},
        )
        return resource_from_dict(response.json())

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        kind = ResourceKind(kind)
        params = [("label", f"{k}={v}") for k, v in (labels or {}).items()]
        if namespace is not None:
            params.append(("namespace", namespace))

        response = self._request(
            "GET",
            f"/{kind.value}",
            f"list {kind.value}",
            kind,
            namespace or "",
            "",
            params=params,
        )
        return [resource_from_dict(item) for item in response.json()]

    def create(self, resource: Resource) -> Resource:
        kind = ResourceKind(resource.kind)
        meta = resource.metadata
        response = self._request(
            "POST",
            f"/{kind.value}",
            f"create {kind.value} {meta.namespace}/{meta.name or meta.generate_name}",
            kind,
            meta.namespace,
            meta.name,
            json=resource.model_dump(mode="json"),
        )
        return resource_from_dict(response.json())

    def patch(
        self,
        kind: ResourceKind,
        namespace: str,
        name: str,
        fields: dict | None = None,
        labels: dict[str, str] | None = None,
        resource_version: int | None = None,
    ) -> Resource:
        kind = ResourceKind(kind)
        response = self._request(
            "PATCH",
            f"/{kind.value}/{name}",
            f"patch {kind.value} {namespace}/{name}",
            kind,
            namespace,
            name,
            params={"namespace": namespace},
            json={
                "fields": fields,
                "labels": labels,
                "resource_version": resource_version,
            },
        )
        return resource_from_dict(response.json())

    def delete(
        self, kind: ResourceKind, namespace: str, name: str, uid: str | None = None
    ) -> None:
        kind = ResourceKind(kind)
        params = {"namespace": namespace}
        if uid is not None:
            params["uid"] = uid
        self._request(
            "DELETE",
            f"/{kind.value}/{name}",
            f"delete {kind.value} {namespace}/{name}",
            kind,
            namespace,
            name,
            params=params,
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
