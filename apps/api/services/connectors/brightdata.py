"""Bright Data datasets API client (trigger / progress / download / list)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from config import require_brightdata_api_key, settings
from services.connectors.types import CollectionRequest, SnapshotHandle, SnapshotProgress, VendorStatus
from services.errors import SnapshotNotFoundError, VendorError

logger = logging.getLogger(__name__)

_STATUS_ALIASES: Dict[str, VendorStatus] = {
    "pending": "pending",
    "queued": "pending",
    "scheduled": "pending",
    "starting": "running",
    "running": "running",
    "collecting": "running",
    "digesting": "running",
    "building": "running",
    "ready": "ready",
    "done": "ready",
    "failed": "failed",
    "error": "failed",
    "canceled": "failed",
    "cancelled": "failed",
}


def normalize_vendor_status(raw: Any) -> VendorStatus:
    """Map vendor status strings onto the four-state job model."""
    key = str(raw or "").strip().lower()
    return _STATUS_ALIASES.get(key, "running")


def _parse_created(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _safe_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class BrightDataClient:
    """Thin async client over the datasets v3 endpoints."""

    def __init__(
        self,
        *,
        api_key: str,
        dataset_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Bright Data API key is required")
        self.dataset_id = dataset_id or settings.BRIGHTDATA_DATASET_ID
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.BRIGHTDATA_BASE_URL).rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=float(timeout_seconds or settings.BRIGHTDATA_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BrightDataClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise VendorError(f"Bright Data request failed: {exc}") from exc
        if response.status_code in (401, 403):
            raise VendorError("Bright Data rejected the API key", status_code=response.status_code)
        return response

    async def trigger_collection(self, request: CollectionRequest) -> SnapshotHandle:
        """Submit a discovery job for profile URLs; returns without waiting."""
        body = [
            {
                "url": url,
                "start_date": request.start_date.isoformat(),
                "end_date": request.end_date.isoformat(),
            }
            for url in request.urls
        ]
        params = {
            "dataset_id": self.dataset_id,
            "include_errors": "true",
            "type": "discover_new",
            "discover_by": "profile_url",
            "limit_per_input": str(request.limit_per_input),
        }
        response = await self._request("POST", "/datasets/v3/trigger", params=params, json=body)
        if response.status_code >= 400:
            raise VendorError(
                f"Bright Data trigger failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )
        payload = response.json()
        snapshot_id = str((payload or {}).get("snapshot_id") or "").strip()
        if not snapshot_id:
            raise VendorError("Bright Data trigger returned no snapshot_id")
        logger.info("Triggered Bright Data collection %s for %d url(s)", snapshot_id, len(request.urls))
        return SnapshotHandle(snapshot_id=snapshot_id, dataset_id=self.dataset_id)

    async def get_progress(self, snapshot_id: str) -> SnapshotProgress:
        """Query job status. Unknown or expired snapshots raise SnapshotNotFoundError."""
        response = await self._request("GET", f"/datasets/v3/progress/{snapshot_id}")
        if response.status_code == 404:
            raise SnapshotNotFoundError(f"Snapshot {snapshot_id} not found or expired", status_code=404)
        if response.status_code >= 400:
            raise VendorError(
                f"Bright Data progress check failed: {response.status_code}",
                status_code=response.status_code,
            )
        data = response.json() or {}
        return SnapshotProgress(
            snapshot_id=str(data.get("snapshot_id") or snapshot_id),
            status=normalize_vendor_status(data.get("status") or data.get("Status")),
            result_count=_safe_int(data.get("records") or data.get("dataset_size") or data.get("Dataset_size")),
            error=data.get("error"),
            error_code=data.get("error_code"),
            cost=data.get("cost"),
            file_size=_safe_int(data.get("file_size")),
            created=_parse_created(data.get("created")),
        )

    async def fetch_result(self, snapshot_id: str) -> List[Dict[str, Any]]:
        """Download the records of a ready snapshot."""
        response = await self._request(
            "GET",
            f"/datasets/v3/snapshot/{snapshot_id}",
            params={"format": "json"},
        )
        if response.status_code == 400:
            # Vendor answers 400 for snapshots that finished with zero records.
            logger.info("Snapshot %s returned 400, treating as empty", snapshot_id)
            return []
        if response.status_code == 404:
            raise SnapshotNotFoundError(f"Snapshot {snapshot_id} data not found or expired", status_code=404)
        if response.status_code >= 400:
            raise VendorError(
                f"Bright Data download failed: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )
        data = response.json()
        if isinstance(data, list):
            return [row for row in data if isinstance(row, dict)]
        if isinstance(data, dict):
            return [data]
        return []

    async def list_snapshots(
        self,
        *,
        limit: int = 500,
        status: Optional[VendorStatus] = None,
    ) -> List[SnapshotProgress]:
        """Enumerate vendor-side snapshots for the dataset (recovery)."""
        params: Dict[str, str] = {"dataset_id": self.dataset_id, "limit": str(max(int(limit), 1))}
        if status:
            params["status"] = status
        response = await self._request("GET", "/datasets/v3/snapshots", params=params)
        if response.status_code >= 400:
            raise VendorError(
                f"Bright Data snapshot listing failed: {response.status_code}",
                status_code=response.status_code,
            )
        rows = response.json() or []
        snapshots: List[SnapshotProgress] = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            snapshots.append(
                SnapshotProgress(
                    snapshot_id=str(row["id"]),
                    status=normalize_vendor_status(row.get("status")),
                    result_count=_safe_int(row.get("dataset_size")),
                    error=row.get("error"),
                    error_code=row.get("error_code"),
                    cost=row.get("cost"),
                    file_size=_safe_int(row.get("file_size")),
                    created=_parse_created(row.get("created")),
                )
            )
        return snapshots


def get_brightdata_client() -> BrightDataClient:
    """Build a client from settings; raises ValueError when credentials are missing."""
    return BrightDataClient(api_key=require_brightdata_api_key())
