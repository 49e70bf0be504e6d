"""Domain models for positions, bounding boxes and no-go zones."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from shapely.geometry import Point, Polygon, box

from floatr.domain.common.errors import ValidationError, validate_coordinates

# GeoJSON polygon coordinates: [outer_ring, hole_1, ...], each ring a list of [lng, lat].
Rings = List[List[List[float]]]


class Severity(str, enum.Enum):
	INFO = "info"
	WARNING = "warning"
	DANGER = "danger"

	@property
	def rank(self) -> int:
		return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 1, Severity.WARNING: 2, Severity.DANGER: 3}


class ZoneType(str, enum.Enum):
	ECOLOGICAL = "ecological"
	ALCOHOL_FREE = "alcohol_free"
	QUIET_ZONE = "quiet_zone"
	NO_ANCHOR = "no_anchor"
	HIGH_TRAFFIC = "high_traffic"
	SPEED_RESTRICTED = "speed_restricted"
	PROTECTED_AREA = "protected_area"


@dataclass(slots=True, frozen=True)
class GeoPoint:
	lat: float
	lng: float

	@classmethod
	def parse(cls, lat, lng) -> "GeoPoint":
		lat_f, lng_f = validate_coordinates(lat, lng)
		return cls(lat=lat_f, lng=lng_f)

	def rounded(self, places: int = 3) -> "GeoPoint":
		return GeoPoint(lat=round(self.lat, places), lng=round(self.lng, places))


@dataclass(slots=True, frozen=True)
class BoundingBox:
	north: float
	south: float
	east: float
	west: float

	@classmethod
	def parse(cls, north, south, east, west) -> "BoundingBox":
		north_f, east_f = validate_coordinates(north, east)
		south_f, west_f = validate_coordinates(south, west)
		if north_f <= south_f:
			raise ValidationError("invalid_bounding_box", field="north")
		if east_f <= west_f:
			raise ValidationError("invalid_bounding_box", field="east")
		return cls(north=north_f, south=south_f, east=east_f, west=west_f)

	def to_shape(self) -> Polygon:
		return box(self.west, self.south, self.east, self.north)

	def to_dict(self) -> dict:
		return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


@dataclass(slots=True)
class VesselPosition:
	vessel_id: str
	lat: float
	lng: float
	recorded_at: datetime
	accuracy: Optional[float] = None
	heading: Optional[float] = None
	speed: Optional[float] = None
	visible: bool = True
	id: Optional[str] = None


@dataclass(slots=True)
class NearbyHit:
	"""Most recent visible position of a vessel plus its distance from the query point."""

	position: VesselPosition
	distance_km: float

	@property
	def vessel_id(self) -> str:
		return self.position.vessel_id


@dataclass(slots=True)
class NoGoZone:
	id: str
	name: str
	zone_type: ZoneType
	severity: Severity
	polygon: Rings
	regulations: List[str] = field(default_factory=list)
	description: Optional[str] = None
	authority: Optional[str] = None
	contact_info: Optional[str] = None
	active: bool = True
	created_at: Optional[datetime] = None

	def to_shape(self) -> Polygon:
		if not self.polygon:
			return Polygon()
		outer, *holes = self.polygon
		return Polygon(outer, holes)

	def contains(self, point: GeoPoint) -> bool:
		"""Strict interior test; points on an edge are outside, as with ST_Contains."""
		return self.to_shape().contains(Point(point.lng, point.lat))

	def intersects(self, bbox: BoundingBox) -> bool:
		return self.to_shape().intersects(bbox.to_shape())


def severity_sort_key(zone: NoGoZone) -> tuple:
	return (-zone.severity.rank, zone.name)
