"""
Resource Store Endpoints.

Exposes a :class:`ResourceStore` over HTTP so several responders (and the
address allocator) can share one store.

Routes (mounted under /api):
    GET    /{kind}                 list, ?namespace=...&label=key=value
    GET    /{kind}/{name}          get, ?namespace=...
    POST   /{kind}                 create
    PATCH  /{kind}/{name}          patch, ?namespace=...
    DELETE /{kind}/{name}          delete, ?namespace=...&uid=...

Errors carry ``detail = {"reason": ..., "message": ...}`` with reason
NotFound (404), AlreadyExists (409) or Conflict (409).
"""

from fastapi import APIRouter, Body, HTTPException, Query, Request
from pydantic import BaseModel

from fedhcp.models.enums import ResourceKind
from fedhcp.models.resources import resource_from_dict
from fedhcp.store.base import (
    REASON_ALREADY_EXISTS,
    REASON_CONFLICT,
    REASON_NOT_FOUND,
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceStore,
    StoreError,
)
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


class PatchRequest(BaseModel):
    """Body of a PATCH request."""

    fields: dict | None = None
    labels: dict[str, str] | None = None
    resource_version: int | None = None


def _store(request: Request) -> ResourceStore:
    return request.app.state.store


def _error(status: int, reason: str, e: Exception) -> HTTPException:
    return HTTPException(status_code=status, detail={"reason": reason, "message": str(e)})


def _parse_labels(label: list[str]) -> dict[str, str]:
    labels = {}
    for item in label:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise HTTPException(status_code=400, detail=f"Invalid label selector '{item}'")
        labels[key] = value
    return labels


# =============================================================================
# Read
# =============================================================================


@router.get("/{kind}")
def list_resources(
    request: Request,
    kind: ResourceKind,
    namespace: str | None = Query(None, description="Namespace; omit for all"),
    label: list[str] = Query(default=[], description="key=value label filter"),
):
    """List records of a kind, optionally filtered by namespace and labels."""
    items = _store(request).list(kind, namespace, _parse_labels(label))
    return [item.model_dump(mode="json") for item in items]


@router.get("/{kind}/{name}")
def get_resource(
    request: Request,
    kind: ResourceKind,
    name: str,
    namespace: str = Query("", description="Namespace ('' for cluster scope)"),
):
    """Fetch one record."""
    try:
        return _store(request).get(kind, namespace, name).model_dump(mode="json")
    except NotFoundError as e:
        raise _error(404, REASON_NOT_FOUND, e)


# =============================================================================
# Write
# =============================================================================


@router.post("/{kind}", status_code=201)
def create_resource(request: Request, kind: ResourceKind, body: dict = Body(...)):
    """Create a record. The body is the serialized record."""
    body["kind"] = kind.value
    try:
        created = _store(request).create(resource_from_dict(body))
    except AlreadyExistsError as e:
        raise _error(409, REASON_ALREADY_EXISTS, e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"Created {kind.value} {created.key}")
    return created.model_dump(mode="json")


@router.patch("/{kind}/{name}")
def patch_resource(
    request: Request,
    kind: ResourceKind,
    name: str,
    patch: PatchRequest,
    namespace: str = Query(""),
):
    """Patch body fields and/or merge labels, optionally guarded by version."""
    try:
        updated = _store(request).patch(
            kind,
            namespace,
            name,
            fields=patch.fields,
            labels=patch.labels,
            resource_version=patch.resource_version,
        )
    except NotFoundError as e:
        raise _error(404, REASON_NOT_FOUND, e)
    except ConflictError as e:
        raise _error(409, REASON_CONFLICT, e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return updated.model_dump(mode="json")


@router.delete("/{kind}/{name}")
def delete_resource(
    request: Request,
    kind: ResourceKind,
    name: str,
    namespace: str = Query(""),
    uid: str | None = Query(None),
):
    """Delete a record, optionally only if it still carries ``uid``."""
    try:
        _store(request).delete(kind, namespace, name, uid=uid)
    except NotFoundError as e:
        raise _error(404, REASON_NOT_FOUND, e)
    except ConflictError as e:
        raise _error(409, REASON_CONFLICT, e)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Deleted {kind.value} {namespace}/{name}")
    return {"message": f"{kind.value} {namespace}/{name} deleted."}
