"""Pydantic schemas for position reporting."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

from floatr.domain.vessels.models import BoatType, Vibe


class PositionReport(BaseModel):
	vessel_id: Optional[str] = Field(
		default=None,
		validation_alias=AliasChoices("vessel_id", "vesselId"),
		description="Limit the report to one owned vessel",
	)
	lat: float
	lng: float
	accuracy: Optional[float] = Field(default=None, ge=0)
	heading: Optional[float] = Field(default=None, ge=0, lt=360)
	speed: Optional[float] = Field(default=None, ge=0)
	visible: bool = True


class VesselBrief(BaseModel):
	id: str
	name: str
	boat_type: BoatType
	vibe: Vibe


class PositionReportResult(BaseModel):
	locations_updated: int
	vessels: List[VesselBrief]


class VesselLocation(BaseModel):
	vessel: VesselBrief
	lat: Optional[float] = None
	lng: Optional[float] = None
	visible: Optional[bool] = None
	recorded_at: Optional[datetime] = None
