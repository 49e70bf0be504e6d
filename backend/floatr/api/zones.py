"""No-go zone endpoints: viewport listing and point checks."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from floatr.api.params import parse_enum
from floatr.domain.geo.models import BoundingBox, GeoPoint, Severity, ZoneType
from floatr.domain.zones import service
from floatr.domain.zones.schemas import PointCheckRequest, PointCheckResponse, ZoneListResponse
from floatr.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/zones", tags=["zones"])


@router.get("", response_model=ZoneListResponse)
async def list_zones(
	*,
	north: Optional[str] = Query(default=None),
	south: Optional[str] = Query(default=None),
	east: Optional[str] = Query(default=None),
	west: Optional[str] = Query(default=None),
	zone_type: Optional[str] = Query(default=None, alias="zoneType"),
	severity: Optional[str] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ZoneListResponse:
	bbox = BoundingBox.parse(north, south, east, west)
	return await service.list_zones(
		bbox,
		zone_type=parse_enum(zone_type, ZoneType, field="zone_type"),
		severity=parse_enum(severity, Severity, field="severity"),
	)


@router.post("/point-check", response_model=PointCheckResponse)
async def point_check(
	payload: PointCheckRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PointCheckResponse:
	return await service.point_check(GeoPoint.parse(payload.lat, payload.lng))
