"""Shipment/upload document store backed by the shared ``db`` library.

The engine only needs "read a record by key, write a record by key"; the
:class:`ShipmentStore` protocol spells that out so tests and callers can
substitute their own. :class:`SqlShipmentStore` keeps each document as a JSON
column (see ``db.models.shipping``) and always performs fetch-merge-write of
the top-level fields it is given, never a blind overwrite of the record.

There is no optimistic-concurrency check: two writers racing on the same
shipment resolve last-write-wins at the field level.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, Protocol

from sqlalchemy import func, select

from db.client import session_scope
from db.models.shipping import ApUploadDocument, ShipmentDocument

from .errors import NotFoundError
from .logging_setup import get_logger

logger = get_logger("freight_recon.store")

# Record fields mirrored into indexed columns.
_BUSINESS_ID_FIELDS = ("shipmentID", "shipmentId")


class ShipmentStore(Protocol):
    def fetch_shipment(self, key: str) -> dict[str, Any] | None: ...

    def find_shipment_by_business_id(self, business_id: str) -> dict[str, Any] | None: ...

    def write_shipment(self, key: str, fields: Mapping[str, Any]) -> None: ...

    def iter_shipment_keys(self) -> Iterator[str]: ...

    def fetch_upload(self, upload_id: str) -> dict[str, Any] | None: ...

    def write_upload(self, upload_id: str, fields: Mapping[str, Any]) -> None: ...


def _business_id(record: Mapping[str, Any]) -> str | None:
    for name in _BUSINESS_ID_FIELDS:
        val = record.get(name)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return None


def _with_key(key: str, record: Mapping[str, Any]) -> dict[str, Any]:
    # Storage key is exposed as ``id``, the way the platform's documents are read.
    return {**record, "id": key}


class SqlShipmentStore:
    """:class:`ShipmentStore` over SQLAlchemy sessions from ``db.client``."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    # ---- shipments ---------------------------------------------------------

    def fetch_shipment(self, key: str) -> dict[str, Any] | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ShipmentDocument, key)
            return _with_key(row.key, row.record) if row is not None else None

    def find_shipment_by_business_id(self, business_id: str) -> dict[str, Any] | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.execute(
                select(ShipmentDocument)
                .where(ShipmentDocument.business_id == business_id)
                .order_by(ShipmentDocument.key)
                .limit(1)
            ).scalar_one_or_none()
            return _with_key(row.key, row.record) if row is not None else None

    def write_shipment(self, key: str, fields: Mapping[str, Any]) -> None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ShipmentDocument, key)
            if row is None:
                raise NotFoundError("shipment", key)
            merged = {**row.record, **{k: v for k, v in fields.items() if k != "id"}}
            # Assign a new dict so the JSON column is flagged dirty.
            row.record = merged
            row.business_id = _business_id(merged)
            row.creation_method = merged.get("creationMethod")
            row.updated_at = func.now()
        logger.debug("wrote shipment %s fields=%s", key, sorted(fields))

    def put_shipment(self, key: str, record: Mapping[str, Any]) -> None:
        """Insert or fully replace a shipment document (seeding/imports)."""

        data = {k: v for k, v in record.items() if k != "id"}
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ShipmentDocument, key)
            if row is None:
                row = ShipmentDocument(key=key, record=data)
                session.add(row)
            else:
                row.record = data
                row.updated_at = func.now()
            row.business_id = _business_id(data)
            row.creation_method = data.get("creationMethod")

    def iter_shipment_keys(self) -> Iterator[str]:
        with session_scope(database_url=self.database_url) as session:
            stmt = select(ShipmentDocument.key).order_by(ShipmentDocument.key)
            keys = list(session.execute(stmt).scalars())
        yield from keys

    # ---- AP uploads --------------------------------------------------------

    def fetch_upload(self, upload_id: str) -> dict[str, Any] | None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ApUploadDocument, upload_id)
            return _with_key(row.id, row.record) if row is not None else None

    def write_upload(self, upload_id: str, fields: Mapping[str, Any]) -> None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ApUploadDocument, upload_id)
            if row is None:
                raise NotFoundError("upload", upload_id)
            merged = {**row.record, **{k: v for k, v in fields.items() if k != "id"}}
            row.record = merged
            status = merged.get("processingStatus")
            if isinstance(status, str) and status:
                row.status = status
            row.updated_at = func.now()

    def put_upload(self, upload_id: str, record: Mapping[str, Any]) -> None:
        data = {k: v for k, v in record.items() if k != "id"}
        data.setdefault("processingStatus", "pending")
        with session_scope(database_url=self.database_url) as session:
            row = session.get(ApUploadDocument, upload_id)
            if row is None:
                session.add(
                    ApUploadDocument(id=upload_id, record=data, status=data["processingStatus"])
                )
            else:
                row.record = data
                row.status = data["processingStatus"]
                row.updated_at = func.now()


__all__ = ["ShipmentStore", "SqlShipmentStore"]
