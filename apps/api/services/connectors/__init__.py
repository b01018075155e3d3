"""Collection vendor client utilities."""

from services.connectors.brightdata import BrightDataClient, get_brightdata_client, normalize_vendor_status
from services.connectors.types import CollectionRequest, SnapshotHandle, SnapshotProgress, VendorStatus

__all__ = [
    "BrightDataClient",
    "CollectionRequest",
    "SnapshotHandle",
    "SnapshotProgress",
    "VendorStatus",
    "get_brightdata_client",
    "normalize_vendor_status",
]
