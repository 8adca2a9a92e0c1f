"""SQLite-backed resource store."""

import random
import string
import uuid

import peewee

from fedhcp.db.base import close_database, db, initialize_database
from fedhcp.db.resource import ResourceRecord
from fedhcp.models.enums import ResourceKind
from fedhcp.models.resources import Resource, resource_from_dict
from fedhcp.store.base import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceStore,
    resource_body,
)
from fedhcp.utils.logger import get_logger

logger = get_logger(__name__)

_SUFFIX_CHARS = string.ascii_lowercase + string.digits
_GENERATE_ATTEMPTS = 5


def _generate_suffix(length: int = 5) -> str:
    return "".join(random.choices(_SUFFIX_CHARS, k=length))


class SQLiteResourceStore(ResourceStore):
    """
    Resource store persisted in a local SQLite file via peewee.

    Used directly by a single-host responder and behind the store service
    (:mod:`fedhcp.store.app`) for multi-process deployments.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        initialize_database(db_path)

    # =========================================================================
    # Read
    # =========================================================================

    def _get_record(self, kind: ResourceKind, namespace: str, name: str) -> ResourceRecord:
        record = ResourceRecord.get_or_none(
            (ResourceRecord.kind == ResourceKind(kind).value)
            & (ResourceRecord.namespace == namespace)
            & (ResourceRecord.name == name)
        )
        if record is None:
            raise NotFoundError(ResourceKind(kind).value, namespace, name)
        return record

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Resource:
        return resource_from_dict(self._get_record(kind, namespace, name).to_dict())

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        query = ResourceRecord.select().where(
            ResourceRecord.kind == ResourceKind(kind).value
        )
        if namespace is not None:
            query = query.where(ResourceRecord.namespace == namespace)
        query = query.order_by(ResourceRecord.created_at, ResourceRecord.id)

        results = []
        for record in query:
            record_labels = record.get_labels()
            if labels and any(record_labels.get(k) != v for k, v in labels.items()):
                continue
            results.append(resource_from_dict(record.to_dict()))
        return results

    # =========================================================================
    # Write
    # =========================================================================

    def create(self, resource: Resource) -> Resource:
        meta = resource.metadata
        kind = ResourceKind(resource.kind).value

        if meta.name:
            names = [meta.name]
        elif meta.generate_name:
            names = [meta.generate_name + _generate_suffix() for _ in range(_GENERATE_ATTEMPTS)]
        else:
            raise ValueError("Resource needs either metadata.name or metadata.generate_name")

        for i, name in enumerate(names):
            record = ResourceRecord(
                kind=kind,
                namespace=meta.namespace,
                name=name,
                uid=str(uuid.uuid4()),
                resource_version=1,
            )
            record.set_labels(dict(meta.labels))
            record.set_body(resource_body(resource))
            try:
                with db.atomic():
                    record.save(force_insert=True)
            except peewee.IntegrityError:
                if meta.name or i == len(names) - 1:
                    raise AlreadyExistsError(kind, meta.namespace, name)
                logger.debug(f"Generated name {name} taken, retrying")
                continue

            logger.debug(f"Created {kind} {meta.namespace}/{name} (uid={record.uid})")
            return resource_from_dict(record.to_dict())

    def patch(
        self,
        kind: ResourceKind,
        namespace: str,
        name: str,
        fields: dict | None = None,
        labels: dict[str, str] | None = None,
        resource_version: int | None = None,
    ) -> Resource:
        with db.atomic("IMMEDIATE"):
            record = self._get_record(kind, namespace, name)
            if resource_version is not None and record.resource_version != resource_version:
                raise ConflictError(
                    record.kind, namespace, name, resource_version, record.resource_version
                )

            if fields:
                body = record.get_body()
                body.update(fields)
                # Validate before writing
                validated = resource_from_dict({"kind": record.kind, **body})
                record.set_body(resource_body(validated))
            if labels:
                merged = record.get_labels()
                merged.update(labels)
                record.set_labels(merged)

            record.resource_version += 1
            record.save()

        logger.debug(
            f"Patched {record.kind} {namespace}/{name} "
            f"(version={record.resource_version})"
        )
        return resource_from_dict(record.to_dict())

    def delete(
        self, kind: ResourceKind, namespace: str, name: str, uid: str | None = None
    ) -> None:
        kind_value = ResourceKind(kind).value
        with db.atomic("IMMEDIATE"):
            record = self._get_record(kind, namespace, name)
            if uid is not None and record.uid != uid:
                raise ConflictError(kind_value, namespace, name, uid, record.uid)
            record.delete_instance()
        logger.debug(f"Deleted {kind_value} {namespace}/{name} (uid={record.uid})")

    def close(self) -> None:
        close_database()
