"""
Scan reconciliation: compares scanned quantities against required order-item
quantities for one scan direction.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from rental_api.domain.enums import ScanType


@dataclass(frozen=True)
class AssetProgress:
    asset_id: UUID
    required: int
    scanned: int

    @property
    def complete(self) -> bool:
        return self.scanned >= self.required


@dataclass(frozen=True)
class GateResult:
    scan_type: ScanType
    required: int
    scanned: int
    assets: List[AssetProgress] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return self.scanned >= self.required

    @property
    def over_scanned(self) -> bool:
        """More units scanned than required; allowed, but worth an audit look."""
        return self.scanned > self.required

    @property
    def shortfall(self) -> int:
        return max(self.required - self.scanned, 0)

    @property
    def percent_complete(self) -> int:
        if self.required <= 0:
            return 100
        return min(round(self.scanned * 100 / self.required), 100)


# PUBLIC_INTERFACE
def reconcile(items: Iterable, scans: Iterable, scan_type: ScanType) -> GateResult:
    """
    Sum item quantities and the quantities of scans of the given type.

    items: objects with `quantity` and optional `asset_id`.
    scans: objects with `scan_type`, `quantity` and optional `asset_id`.
    """
    required_by_asset: Dict[Optional[UUID], int] = defaultdict(int)
    scanned_by_asset: Dict[Optional[UUID], int] = defaultdict(int)

    required = 0
    for item in items:
        required += item.quantity
        required_by_asset[item.asset_id] += item.quantity

    scanned = 0
    for scan in scans:
        if scan.scan_type != scan_type:
            continue
        scanned += scan.quantity
        scanned_by_asset[scan.asset_id] += scan.quantity

    assets = [
        AssetProgress(asset_id=asset_id, required=qty, scanned=scanned_by_asset.get(asset_id, 0))
        for asset_id, qty in required_by_asset.items()
        if asset_id is not None
    ]
    return GateResult(scan_type=scan_type, required=required, scanned=scanned, assets=assets)
