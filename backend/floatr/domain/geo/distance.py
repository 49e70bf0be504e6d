"""Great-circle helpers (spherical earth, R = 6371 km)."""

from __future__ import annotations

import math
from typing import Tuple

EARTH_RADIUS_KM = 6371.0
KM_TO_NAUTICAL_MILES = 0.539957


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Return the great-circle distance in kilometres between two WGS84 points."""
	phi1 = math.radians(lat1)
	phi2 = math.radians(lat2)
	d_phi = math.radians(lat2 - lat1)
	d_lambda = math.radians(lon2 - lon1)
	a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
	# Clamp against float drift for antipodal points
	a = min(1.0, max(0.0, a))
	return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def km_to_nautical_miles(km: float) -> float:
	return km * KM_TO_NAUTICAL_MILES


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	"""Initial bearing from point 1 to point 2, degrees clockwise from true north in [0, 360)."""
	phi1 = math.radians(lat1)
	phi2 = math.radians(lat2)
	d_lambda = math.radians(lon2 - lon1)
	y = math.sin(d_lambda) * math.cos(phi2)
	x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
	return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
	"""Return (south, north, west, east) enclosing a circle of ``radius_km``.

	The box is a superset of the circle; callers refine with haversine_km. Near the
	poles or across the antimeridian the longitude span widens to the full range.
	"""
	d_lat = math.degrees(radius_km / EARTH_RADIUS_KM)
	south = max(-90.0, lat - d_lat)
	north = min(90.0, lat + d_lat)
	if south <= -90.0 or north >= 90.0:
		return south, north, -180.0, 180.0
	d_lon = math.degrees(radius_km / (EARTH_RADIUS_KM * math.cos(math.radians(lat))))
	west = lon - d_lon
	east = lon + d_lon
	if west < -180.0 or east > 180.0:
		return south, north, -180.0, 180.0
	return south, north, west, east
