from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rental_api.domain.enums import ItemCondition, ScanType


class ScanRequest(BaseModel):
    """One scan of one or more units."""
    quantity: int = Field(1, description="Units scanned, > 0")
    asset_id: Optional[UUID] = Field(None, description="Scanned asset; must belong to the order")
    condition: Optional[ItemCondition] = Field(None)
    notes: Optional[str] = Field(None)


class ScanEventRead(BaseModel):
    """Scan event read model."""
    id: UUID
    order_id: UUID
    asset_id: Optional[UUID] = None
    scan_type: ScanType
    quantity: int
    condition: Optional[ItemCondition] = None
    notes: Optional[str] = None
    scanned_by: UUID
    scanned_at: datetime

    class Config:
        from_attributes = True


class AssetProgressRead(BaseModel):
    asset_id: UUID
    required: int
    scanned: int
    complete: bool

    class Config:
        from_attributes = True


class GateProgressRead(BaseModel):
    """Scan progress for one direction."""
    scan_type: ScanType
    required: int
    scanned: int
    shortfall: int
    percent_complete: int
    satisfied: bool
    over_scanned: bool
    assets: List[AssetProgressRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ScanResponse(BaseModel):
    """Recorded event plus the recomputed gate."""
    event: ScanEventRead
    progress: GateProgressRead


class TruckPhotosRequest(BaseModel):
    photos: List[str] = Field(..., description="Storage references of uploaded photos")
