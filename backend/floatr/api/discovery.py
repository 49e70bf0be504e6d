"""Nearby vessel discovery endpoint."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from floatr.api.params import parse_enum_list
from floatr.domain.discovery import service
from floatr.domain.discovery.schemas import NearbyResponse
from floatr.domain.geo.models import GeoPoint
from floatr.domain.vessels.models import BoatType, Vibe
from floatr.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.get("/nearby", response_model=NearbyResponse)
async def discovery_nearby(
	*,
	lat: Optional[str] = Query(default=None),
	lng: Optional[str] = Query(default=None),
	radius: Optional[str] = Query(default=None, description="Search radius in km"),
	vibe: Optional[List[str]] = Query(default=None),
	boat_type: Optional[List[str]] = Query(default=None, alias="type"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> NearbyResponse:
	point = GeoPoint.parse(lat, lng)
	return await service.find_nearby(
		auth_user,
		point,
		radius_km=radius,
		vibes=parse_enum_list(vibe, Vibe, field="vibe"),
		boat_types=parse_enum_list(boat_type, BoatType, field="type"),
	)
