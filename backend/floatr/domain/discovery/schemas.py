"""Pydantic schemas for discovery responses."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from floatr.domain.vessels.models import BoatType, Vibe


class CaptainSummary(BaseModel):
	id: str
	display_name: str
	avatar_url: Optional[str] = None
	verified: bool = False


class CrewPreview(BaseModel):
	name: str
	avatar_url: Optional[str] = None


class LocationOut(BaseModel):
	lat: float
	lng: float
	accuracy: Optional[float] = None
	heading: Optional[float] = None
	speed: Optional[float] = None
	last_updated: datetime


class Candidate(BaseModel):
	vessel_id: str
	name: str
	boat_type: BoatType
	vibe: Vibe
	capacity: int
	amenities: List[str] = Field(default_factory=list)
	images: List[str] = Field(default_factory=list)
	captain: CaptainSummary
	crew: List[CrewPreview] = Field(default_factory=list)
	crew_count: int = 0
	location: LocationOut
	distance_km: float
	distance_nm: float
	bearing_deg: float


class AppliedFilters(BaseModel):
	radius_km: float
	vibes: List[Vibe] = Field(default_factory=list)
	boat_types: List[BoatType] = Field(default_factory=list)
	source: str = Field(description="query, preferences or none")


class NearbyResponse(BaseModel):
	candidates: List[Candidate]
	total: int
	center: dict
	filters: AppliedFilters
