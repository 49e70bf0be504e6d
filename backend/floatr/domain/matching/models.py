"""Domain models for swipes and matches."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


class SwipeKind(str, enum.Enum):
	LIKE = "like"
	PASS = "pass"

	@classmethod
	def parse(cls, value: str) -> "SwipeKind":
		return cls(str(value).strip().lower())


class MatchStatus(str, enum.Enum):
	PENDING = "pending"
	MATCHED = "matched"
	EXPIRED = "expired"
	UNMATCHED = "unmatched"


@dataclass(slots=True, frozen=True)
class VesselPair:
	"""Canonical (unordered) pair of vessels; both match rows share it."""

	vessel_a: str
	vessel_b: str

	@classmethod
	def of(cls, one: str, two: str) -> "VesselPair":
		ordered = tuple(sorted((str(one), str(two))))
		return cls(vessel_a=ordered[0], vessel_b=ordered[1])

	@property
	def key(self) -> str:
		return f"pair:{self.vessel_a}:{self.vessel_b}"

	def participants(self) -> Tuple[str, str]:
		return (self.vessel_a, self.vessel_b)

	def other(self, vessel_id: str) -> str:
		return self.vessel_b if vessel_id == self.vessel_a else self.vessel_a


@dataclass(slots=True)
class Swipe:
	id: str
	acting_vessel_id: str
	target_vessel_id: str
	action: SwipeKind
	created_at: datetime


@dataclass(slots=True)
class Match:
	id: str
	liker_vessel_id: str
	liked_vessel_id: str
	status: MatchStatus
	created_at: datetime
	matched_at: Optional[datetime] = None
	expires_at: Optional[datetime] = None

	@property
	def pair(self) -> VesselPair:
		return VesselPair.of(self.liker_vessel_id, self.liked_vessel_id)

	@property
	def is_matched(self) -> bool:
		return self.status == MatchStatus.MATCHED


@dataclass(slots=True)
class SwipeOutcome:
	swipe: Swipe
	is_match: bool
	match: Optional[Match] = None
