"""Collection vendor contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional


VendorStatus = Literal["pending", "running", "ready", "failed"]


@dataclass(frozen=True)
class SnapshotHandle:
    snapshot_id: str
    dataset_id: str


@dataclass(frozen=True)
class SnapshotProgress:
    snapshot_id: str
    status: VendorStatus
    result_count: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    cost: Optional[float] = None
    file_size: Optional[int] = None
    created: Optional[datetime] = None


@dataclass(frozen=True)
class CollectionRequest:
    urls: List[str]
    start_date: datetime
    end_date: datetime
    limit_per_input: int
    extra: Dict[str, Any] = field(default_factory=dict)
