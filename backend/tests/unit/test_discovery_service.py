from datetime import datetime, timedelta, timezone

import pytest

from floatr.domain.common import blocks
from floatr.domain.common.errors import ValidationError
from floatr.domain.discovery.service import DiscoveryService, resolve_radius
from floatr.domain.geo.index import MemorySpatialIndex
from floatr.domain.geo.models import GeoPoint, VesselPosition
from floatr.domain.vessels import repo as vessel_repo
from floatr.domain.vessels.models import BoatType, CrewMember, DiscoveryPreferences, Vibe
from floatr.infra.auth import AuthenticatedUser

NOW = datetime.now(timezone.utc)
CENTER = GeoPoint(lat=52.3676, lng=4.9041)
REQUESTER = AuthenticatedUser(id="captain-me")


async def _place(index, vessel_id, lat, lng, *, age=timedelta(minutes=5)):
	await index.record_position(
		VesselPosition(vessel_id=vessel_id, lat=lat, lng=lng, recorded_at=NOW - age),
		keep=10,
	)


@pytest.fixture
def index():
	return MemorySpatialIndex()


@pytest.mark.asyncio
async def test_excludes_own_blocked_inactive_and_unverified(index, seed_vessel):
	await seed_vessel("mine", "captain-me")
	await seed_vessel("ok", "captain-ok")
	await seed_vessel("blocked", "captain-blocked")
	await seed_vessel("blocker", "captain-blocker")
	await seed_vessel("inactive", "captain-inactive", active=False)
	await seed_vessel("unverified", "captain-unverified", verified=False)
	await seed_vessel("banned", "captain-banned", captain_active=False)
	for vessel_id in ("mine", "ok", "blocked", "blocker", "inactive", "unverified", "banned"):
		await _place(index, vessel_id, 52.37, 4.91)
	await blocks.record_block("captain-me", "captain-blocked")
	await blocks.record_block("captain-blocker", "captain-me")

	response = await DiscoveryService(index=index).find_nearby(REQUESTER, CENTER, now=NOW)

	assert [c.vessel_id for c in response.candidates] == ["ok"]
	assert response.total == 1


@pytest.mark.asyncio
async def test_candidates_carry_previews_and_nautical_distance(index, seed_vessel):
	await seed_vessel("ok", "captain-ok")
	for idx in range(5):
		await vessel_repo.register_crew(CrewMember(vessel_id="ok", name=f"crew-{idx}"))
	await _place(index, "ok", 52.0907, 5.1214)

	response = await DiscoveryService(index=index).find_nearby(REQUESTER, CENTER, now=NOW)
	candidate = response.candidates[0]

	assert len(candidate.amenities) == 3
	assert len(candidate.images) == 1
	assert len(candidate.crew) == 3
	assert candidate.crew_count == 5
	assert candidate.captain.verified is True
	assert candidate.distance_km == pytest.approx(34.0, abs=2.0)
	assert candidate.distance_nm == pytest.approx(candidate.distance_km * 0.539957, abs=0.01)
	assert 90.0 < candidate.bearing_deg < 180.0


@pytest.mark.asyncio
async def test_stale_positions_are_not_discoverable(index, seed_vessel):
	await seed_vessel("stale", "captain-stale")
	await _place(index, "stale", 52.37, 4.91, age=timedelta(hours=2, minutes=1))

	response = await DiscoveryService(index=index).find_nearby(REQUESTER, CENTER, now=NOW)

	assert response.candidates == []


@pytest.mark.asyncio
async def test_query_filters_win_over_stored_preferences(index, seed_vessel):
	await seed_vessel("party-sail", "c1", vibe=Vibe.PARTY, boat_type=BoatType.SAILBOAT)
	await seed_vessel("chill-yacht", "c2", vibe=Vibe.CHILL, boat_type=BoatType.YACHT)
	await _place(index, "party-sail", 52.37, 4.91)
	await _place(index, "chill-yacht", 52.37, 4.92)
	await vessel_repo.set_preferences("captain-me", DiscoveryPreferences(vibes=[Vibe.CHILL]))
	service = DiscoveryService(index=index)

	from_prefs = await service.find_nearby(REQUESTER, CENTER, now=NOW)
	assert [c.vessel_id for c in from_prefs.candidates] == ["chill-yacht"]
	assert from_prefs.filters.source == "preferences"

	from_query = await service.find_nearby(REQUESTER, CENTER, vibes=[Vibe.PARTY], now=NOW)
	assert [c.vessel_id for c in from_query.candidates] == ["party-sail"]
	assert from_query.filters.source == "query"


@pytest.mark.asyncio
async def test_audit_event_rounds_coordinates(index, seed_vessel, fake_redis):
	await DiscoveryService(index=index).find_nearby(
		REQUESTER, GeoPoint(lat=52.367612, lng=4.904187), now=NOW
	)

	entries = await fake_redis.xrange("x:floatr.audit")
	search = [fields for _, fields in entries if fields["event"] == "discovery_search"]
	assert search
	assert search[0]["center"] == '{"lat":52.368,"lng":4.904}'


def test_radius_defaults_clamps_and_rejects_non_positive():
	assert resolve_radius(None) == 50.0
	assert resolve_radius(500) == 100.0
	assert resolve_radius(12.5) == 12.5
	with pytest.raises(ValidationError):
		resolve_radius(0)
	with pytest.raises(ValidationError):
		resolve_radius(-3)
