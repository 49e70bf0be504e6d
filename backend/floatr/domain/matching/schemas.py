"""Pydantic schemas for swipe and match endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

from floatr.domain.discovery.schemas import CaptainSummary
from floatr.domain.matching.models import Match, MatchStatus, SwipeKind
from floatr.domain.vessels.models import BoatType, Vibe


class SwipeRequest(BaseModel):
	acting_vessel_id: str = Field(validation_alias=AliasChoices("acting_vessel_id", "actingVesselId"))
	target_vessel_id: str = Field(validation_alias=AliasChoices("target_vessel_id", "targetVesselId"))
	action: str = Field(..., description="like or pass")


class MatchOut(BaseModel):
	id: str
	liker_vessel_id: str
	liked_vessel_id: str
	status: MatchStatus
	matched_at: Optional[datetime] = None
	expires_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, match: Match) -> "MatchOut":
		return cls(
			id=match.id,
			liker_vessel_id=match.liker_vessel_id,
			liked_vessel_id=match.liked_vessel_id,
			status=match.status,
			matched_at=match.matched_at,
			expires_at=match.expires_at,
		)


class SwipeOut(BaseModel):
	id: str
	action: SwipeKind
	created_at: datetime


class CounterpartVessel(BaseModel):
	id: str
	name: str
	boat_type: BoatType
	vibe: Vibe
	images: List[str] = Field(default_factory=list)
	captain: Optional[CaptainSummary] = None


class SwipeResponse(BaseModel):
	swipe: SwipeOut
	is_match: bool
	match: Optional[MatchOut] = None
	counterpart: Optional[CounterpartVessel] = None


class MatchHistoryItem(BaseModel):
	match: MatchOut
	my_vessel_id: str
	counterpart: CounterpartVessel


class MatchHistoryResponse(BaseModel):
	items: List[MatchHistoryItem]
	total: int
