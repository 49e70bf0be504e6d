"""ZoneGuard: containment and viewport queries over the no-go zone catalog."""

from __future__ import annotations

from typing import List, Optional

from floatr.domain.common import events
from floatr.domain.geo.index import SpatialIndex, get_spatial_index
from floatr.domain.geo.models import BoundingBox, GeoPoint, NoGoZone, Severity, ZoneType
from floatr.domain.zones.schemas import PointCheckResponse, ZoneFilters, ZoneListResponse, ZoneOut
from floatr.infra.retry import retry_read
from floatr.obs import metrics as obs_metrics
from floatr.settings import settings


def highest_severity(zones: List[NoGoZone]) -> Optional[Severity]:
	if not zones:
		return None
	return max((zone.severity for zone in zones), key=lambda severity: severity.rank)


class ZoneGuard:
	def __init__(self, index: SpatialIndex | None = None) -> None:
		self._index = index

	async def _resolve(self) -> SpatialIndex:
		if self._index is not None:
			return self._index
		return await get_spatial_index()

	async def containing_zones(self, point: GeoPoint) -> List[NoGoZone]:
		index = await self._resolve()
		zones = await retry_read(index.containing_zones, point, op="containing_zones")
		obs_metrics.inc_zone_check("point", bool(zones))
		return zones

	async def zones_in_bbox(
		self,
		bbox: BoundingBox,
		*,
		zone_type: Optional[ZoneType] = None,
		severity: Optional[Severity] = None,
	) -> List[NoGoZone]:
		index = await self._resolve()
		zones = await retry_read(
			index.zones_in_bbox,
			bbox,
			zone_type=zone_type,
			severity=severity,
			limit=settings.zones_result_limit,
			op="zones_in_bbox",
		)
		obs_metrics.inc_zone_check("bbox", bool(zones))
		return zones

	async def point_check(self, point: GeoPoint) -> PointCheckResponse:
		zones = await self.containing_zones(point)
		return PointCheckResponse(
			point={"lat": point.lat, "lng": point.lng},
			within_zones=bool(zones),
			zones=[ZoneOut.from_model(zone, with_geometry=False) for zone in zones],
			highest_severity=highest_severity(zones),
		)

	async def list_zones(
		self,
		bbox: BoundingBox,
		*,
		zone_type: Optional[ZoneType] = None,
		severity: Optional[Severity] = None,
	) -> ZoneListResponse:
		zones = await self.zones_in_bbox(bbox, zone_type=zone_type, severity=severity)
		await events.audit(
			"zones_fetched",
			zones_count=len(zones),
			bounding_box=bbox.to_dict(),
			filters={
				"zone_type": zone_type.value if zone_type else None,
				"severity": severity.value if severity else None,
			},
		)
		return ZoneListResponse(
			zones=[ZoneOut.from_model(zone) for zone in zones],
			total_zones=len(zones),
			filters=ZoneFilters(zone_type=zone_type, severity=severity, bounding_box=bbox.to_dict()),
		)


_SERVICE = ZoneGuard()


async def point_check(point: GeoPoint) -> PointCheckResponse:
	return await _SERVICE.point_check(point)


async def list_zones(
	bbox: BoundingBox,
	*,
	zone_type: Optional[ZoneType] = None,
	severity: Optional[Severity] = None,
) -> ZoneListResponse:
	return await _SERVICE.list_zones(bbox, zone_type=zone_type, severity=severity)
