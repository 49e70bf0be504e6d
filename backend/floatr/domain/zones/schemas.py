"""Pydantic schemas for the zones API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from floatr.domain.geo.models import NoGoZone, Severity, ZoneType


class ZoneOut(BaseModel):
	id: str
	name: str
	zone_type: ZoneType
	severity: Severity
	description: Optional[str] = None
	regulations: List[str] = Field(default_factory=list)
	authority: Optional[str] = None
	contact_info: Optional[str] = None
	coordinates: List[List[List[float]]] = Field(default_factory=list)
	created_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, zone: NoGoZone, *, with_geometry: bool = True) -> "ZoneOut":
		return cls(
			id=zone.id,
			name=zone.name,
			zone_type=zone.zone_type,
			severity=zone.severity,
			description=zone.description,
			regulations=list(zone.regulations),
			authority=zone.authority,
			contact_info=zone.contact_info,
			coordinates=[[list(map(float, point)) for point in ring] for ring in zone.polygon] if with_geometry else [],
			created_at=zone.created_at,
		)


class ZoneFilters(BaseModel):
	zone_type: Optional[ZoneType] = None
	severity: Optional[Severity] = None
	bounding_box: Optional[dict] = None


class ZoneListResponse(BaseModel):
	zones: List[ZoneOut]
	total_zones: int
	filters: ZoneFilters


class PointCheckRequest(BaseModel):
	lat: float
	lng: float


class PointCheckResponse(BaseModel):
	point: dict
	within_zones: bool
	zones: List[ZoneOut]
	highest_severity: Optional[Severity] = None
