from datetime import datetime, timedelta, timezone

import pytest

from floatr.domain.geo.index import MemorySpatialIndex
from floatr.domain.geo.models import GeoPoint, VesselPosition

NOW = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)
CENTER = GeoPoint(lat=52.3676, lng=4.9041)


def _position(vessel_id, age, *, lat=52.37, lng=4.91, visible=True):
	return VesselPosition(vessel_id=vessel_id, lat=lat, lng=lng, recorded_at=NOW - age, visible=visible)


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"age,expected",
	[
		(timedelta(hours=1, minutes=59), True),
		(timedelta(hours=2), True),
		(timedelta(hours=2, minutes=1), False),
	],
)
async def test_recency_window_is_inclusive(age, expected):
	index = MemorySpatialIndex()
	await index.record_position(_position("v1", age), keep=10)

	hits = await index.nearby(CENTER, 10.0, NOW - timedelta(hours=2))

	assert bool(hits) is expected


@pytest.mark.asyncio
async def test_nearby_uses_latest_visible_position_only():
	index = MemorySpatialIndex()
	await index.record_position(_position("v1", timedelta(minutes=30), lat=52.40), keep=10)
	await index.record_position(_position("v1", timedelta(minutes=5), lat=52.3680), keep=10)
	await index.record_position(_position("v2", timedelta(minutes=5), visible=False), keep=10)

	hits = await index.nearby(CENTER, 10.0, NOW - timedelta(hours=2))

	assert [hit.vessel_id for hit in hits] == ["v1"]
	assert hits[0].position.lat == pytest.approx(52.3680)
	assert hits[0].distance_km == round(hits[0].distance_km, 2)


@pytest.mark.asyncio
async def test_nearby_sorts_by_distance_then_vessel_id():
	index = MemorySpatialIndex()
	await index.record_position(_position("b", timedelta(minutes=1), lat=52.40), keep=10)
	await index.record_position(_position("a", timedelta(minutes=1), lat=52.40), keep=10)
	await index.record_position(_position("c", timedelta(minutes=1), lat=52.37), keep=10)
	await index.record_position(_position("far", timedelta(minutes=1), lat=48.85, lng=2.35), keep=10)

	hits = await index.nearby(CENTER, 25.0, NOW - timedelta(hours=2))

	assert [hit.vessel_id for hit in hits] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_record_position_prunes_to_newest_rows():
	index = MemorySpatialIndex()
	for minutes in range(15):
		await index.record_position(_position("v1", timedelta(minutes=minutes)), keep=10)

	history = await index.history("v1")

	assert len(history) == 10
	assert min(p.recorded_at for p in history) == NOW - timedelta(minutes=9)


@pytest.mark.asyncio
async def test_prune_never_empties_history():
	index = MemorySpatialIndex()
	await index.record_position(_position("v1", timedelta(minutes=1)), keep=0)

	assert len(await index.history("v1")) == 1


@pytest.mark.asyncio
async def test_latest_positions_include_hidden_rows():
	index = MemorySpatialIndex()
	await index.record_position(_position("v1", timedelta(minutes=10)), keep=10)
	await index.record_position(_position("v1", timedelta(minutes=1), visible=False), keep=10)

	latest = await index.latest_positions(["v1", "missing"])

	assert set(latest) == {"v1"}
	assert latest["v1"].visible is False
