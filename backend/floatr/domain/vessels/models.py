"""Domain models for vessels and the captains who own them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional


class BoatType(str, enum.Enum):
	SAILBOAT = "sailboat"
	MOTORBOAT = "motorboat"
	YACHT = "yacht"
	CATAMARAN = "catamaran"
	SPEEDBOAT = "speedboat"
	OTHER = "other"


class Vibe(str, enum.Enum):
	PARTY = "party"
	CHILL = "chill"
	PRIVATE = "private"
	FAMILY = "family"
	ADVENTURE = "adventure"


@dataclass(slots=True)
class Captain:
	id: str
	display_name: str
	avatar_url: Optional[str] = None
	verified: bool = False
	active: bool = True


@dataclass(slots=True)
class CrewMember:
	vessel_id: str
	name: str
	avatar_url: Optional[str] = None


@dataclass(slots=True)
class Vessel:
	id: str
	owner_id: str
	name: str
	boat_type: BoatType
	capacity: int
	vibe: Vibe
	amenities: List[str] = field(default_factory=list)
	images: List[str] = field(default_factory=list)
	active: bool = True

	def is_owned_by(self, user_id: str) -> bool:
		return self.owner_id == str(user_id)


@dataclass(slots=True)
class DiscoveryPreferences:
	"""Stored discovery filters; empty lists mean no filter."""

	vibes: List[Vibe] = field(default_factory=list)
	boat_types: List[BoatType] = field(default_factory=list)
	max_radius_km: Optional[float] = None
