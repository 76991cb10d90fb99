"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the shipment document models used by ``freight_recon``.
"""

from .shipping import ApUploadDocument, Base, ShipmentDocument

__all__ = [
    "Base",
    "ShipmentDocument",
    "ApUploadDocument",
]
