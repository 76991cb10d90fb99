from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: shipments
# ---------------------------


class ShipmentDocument(Base):
    __tablename__ = "shipments"

    # Storage key (the document id); ledgers derive ``rates_<key>`` from it.
    key: Mapped[str] = mapped_column(String, primary_key=True)
    # Business identifier (``shipmentID`` inside the record), kept in sync on
    # every write so lookups by business id do not scan JSON.
    business_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    creation_method: Mapped[str | None] = mapped_column(String, nullable=True)
    # The native shipment record. Several historical rate shapes live side by
    # side in here (manualRates, updatedCharges, markupRates, selectedRate);
    # the engine owns only the rate fields and never rewrites the rest.
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# AP uploads (invoice batches)
# ---------------------------


class ApUploadDocument(Base):
    __tablename__ = "ap_uploads"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Mirrors ``processingStatus`` in the record: pending until an approval
    # or rejection commits it.
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "ShipmentDocument",
    "ApUploadDocument",
]
