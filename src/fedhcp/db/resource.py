"""
Resource record database model.

All three record kinds live in one table keyed by (kind, namespace, name).
Labels and the kind-specific body are stored as JSON text.
"""

import datetime
import json

import peewee

from fedhcp.db.base import BaseModel


# =============================================================================
# Resource Record Model
# =============================================================================


class ResourceRecord(BaseModel):
    """
    One stored Subnet, AddressReservation or Endpoint.

    Attributes:
        kind: Record kind (ResourceKind value).
        namespace: Namespace ('' for cluster-scoped records).
        name: Record name, unique per kind and namespace.
        uid: Identity assigned at creation; differs across recreations.
        resource_version: Incremented on every update.
        labels: JSON object of label key/values.
        body: JSON object of the kind-specific fields.
    """

    # -------------------------------------------------------------------------
    # Identification
    # -------------------------------------------------------------------------

    kind = peewee.CharField(index=True)
    namespace = peewee.CharField(default="", index=True)
    name = peewee.CharField()
    uid = peewee.CharField(unique=True)

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    resource_version = peewee.IntegerField(default=1)
    created_at = peewee.DateTimeField(default=datetime.datetime.now)

    # -------------------------------------------------------------------------
    # Content (stored as JSON)
    # -------------------------------------------------------------------------

    labels = peewee.TextField(default="{}")
    body = peewee.TextField(default="{}")

    class Meta:
        table_name = "resources"
        indexes = ((("kind", "namespace", "name"), True),)

    def get_labels(self) -> dict[str, str]:
        return json.loads(self.labels) if self.labels else {}

    def set_labels(self, labels: dict[str, str]) -> None:
        self.labels = json.dumps(labels, sort_keys=True)

    def get_body(self) -> dict:
        return json.loads(self.body) if self.body else {}

    def set_body(self, body: dict) -> None:
        self.body = json.dumps(body, sort_keys=True)

    def to_dict(self) -> dict:
        """Serialize to the wire/pydantic shape used by the store."""
        data = self.get_body()
        data["kind"] = self.kind
        data["metadata"] = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": self.get_labels(),
            "uid": self.uid,
            "resource_version": self.resource_version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        return data
