"""Position reporting: a captain's ping is appended for each of their active vessels."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from floatr.domain.common import events
from floatr.domain.common.errors import AuthorizationError, NotFoundError, validate_coordinates
from floatr.domain.geo.index import SpatialIndex, get_spatial_index
from floatr.domain.geo.models import VesselPosition
from floatr.domain.vessels.models import Vessel
from floatr.domain.vessels.repo import VesselDirectory
from floatr.domain.vessels.schemas import PositionReport, PositionReportResult, VesselBrief, VesselLocation
from floatr.infra.auth import AuthenticatedUser
from floatr.settings import settings

logger = logging.getLogger(__name__)


def _brief(vessel: Vessel) -> VesselBrief:
	return VesselBrief(id=vessel.id, name=vessel.name, boat_type=vessel.boat_type, vibe=vessel.vibe)


class PositionService:
	def __init__(
		self,
		index: SpatialIndex | None = None,
		directory: VesselDirectory | None = None,
	) -> None:
		self._index = index
		self._directory = directory or VesselDirectory()

	async def _resolve_index(self) -> SpatialIndex:
		if self._index is not None:
			return self._index
		return await get_spatial_index()

	async def _target_vessels(self, user: AuthenticatedUser, vessel_id: Optional[str]) -> List[Vessel]:
		if vessel_id:
			vessel = await self._directory.get_vessel(vessel_id)
			if vessel is None or not vessel.active:
				raise NotFoundError("vessel_not_found")
			if not vessel.is_owned_by(user.id):
				raise AuthorizationError("not_vessel_owner")
			return [vessel]
		owned = await self._directory.list_owned(user.id)
		if not owned:
			raise AuthorizationError("no_active_vessels")
		return owned

	async def report(
		self,
		user: AuthenticatedUser,
		report: PositionReport,
		*,
		now: Optional[datetime] = None,
	) -> PositionReportResult:
		lat, lng = validate_coordinates(report.lat, report.lng)
		vessels = await self._target_vessels(user, report.vessel_id)
		recorded_at = now or datetime.now(timezone.utc)
		index = await self._resolve_index()
		for vessel in vessels:
			await index.record_position(
				VesselPosition(
					vessel_id=vessel.id,
					lat=lat,
					lng=lng,
					accuracy=report.accuracy,
					heading=report.heading,
					speed=report.speed,
					recorded_at=recorded_at,
					visible=report.visible,
				),
				keep=settings.position_retention_count,
			)
		await events.audit(
			"location_updated",
			user_id=user.id,
			vessel_count=len(vessels),
			center={"lat": round(lat, 3), "lng": round(lng, 3)},
			accuracy=report.accuracy,
			visible=report.visible,
		)
		return PositionReportResult(locations_updated=len(vessels), vessels=[_brief(v) for v in vessels])

	async def my_locations(self, user: AuthenticatedUser) -> List[VesselLocation]:
		owned = await self._directory.list_owned(user.id)
		index = await self._resolve_index()
		latest = await index.latest_positions(v.id for v in owned)
		result: List[VesselLocation] = []
		for vessel in owned:
			position = latest.get(vessel.id)
			result.append(
				VesselLocation(
					vessel=_brief(vessel),
					lat=position.lat if position else None,
					lng=position.lng if position else None,
					visible=position.visible if position else None,
					recorded_at=position.recorded_at if position else None,
				)
			)
		return result


_SERVICE = PositionService()


async def report(user: AuthenticatedUser, payload: PositionReport) -> PositionReportResult:
	return await _SERVICE.report(user, payload)


async def my_locations(user: AuthenticatedUser) -> List[VesselLocation]:
	return await _SERVICE.my_locations(user)
