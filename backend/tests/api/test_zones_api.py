import pytest
import pytest_asyncio

from floatr.domain.geo.index import memory_index
from floatr.domain.geo.models import NoGoZone, Severity, ZoneType

HEADERS = {"X-User-Id": "captain-a"}
HARBOUR = [[[4.88, 52.36], [4.92, 52.36], [4.92, 52.39], [4.88, 52.39], [4.88, 52.36]]]
FAR_AWAY = [[[13.0, 45.0], [13.5, 45.0], [13.5, 45.5], [13.0, 45.5], [13.0, 45.0]]]


@pytest_asyncio.fixture
async def zones():
	index = memory_index()
	await index.add_zone(
		NoGoZone(
			id="zone-quiet",
			name="Harbour quiet zone",
			zone_type=ZoneType.QUIET_ZONE,
			severity=Severity.WARNING,
			polygon=HARBOUR,
			regulations=["No amplified music"],
		)
	)
	await index.add_zone(
		NoGoZone(
			id="zone-reserve",
			name="Bird reserve",
			zone_type=ZoneType.PROTECTED_AREA,
			severity=Severity.DANGER,
			polygon=HARBOUR,
		)
	)
	await index.add_zone(
		NoGoZone(
			id="zone-far",
			name="Lagoon",
			zone_type=ZoneType.ECOLOGICAL,
			severity=Severity.INFO,
			polygon=FAR_AWAY,
		)
	)


@pytest.mark.asyncio
async def test_list_zones_in_viewport(api_client, zones):
	resp = await api_client.get(
		"/zones",
		params={"north": 52.5, "south": 52.2, "east": 5.1, "west": 4.7},
		headers=HEADERS,
	)

	assert resp.status_code == 200
	body = resp.json()
	assert body["total_zones"] == 2
	assert [zone["id"] for zone in body["zones"]] == ["zone-reserve", "zone-quiet"]
	assert body["filters"]["bounding_box"] == {"north": 52.5, "south": 52.2, "east": 5.1, "west": 4.7}


@pytest.mark.asyncio
async def test_list_zones_filters_by_type(api_client, zones):
	resp = await api_client.get(
		"/zones",
		params={"north": 52.5, "south": 52.2, "east": 5.1, "west": 4.7, "zoneType": "quiet_zone"},
		headers=HEADERS,
	)

	assert [zone["id"] for zone in resp.json()["zones"]] == ["zone-quiet"]


@pytest.mark.asyncio
async def test_list_zones_rejects_bad_viewport(api_client, zones):
	missing = await api_client.get("/zones", params={"north": 52.5}, headers=HEADERS)
	inverted = await api_client.get(
		"/zones",
		params={"north": 52.2, "south": 52.5, "east": 5.1, "west": 4.7},
		headers=HEADERS,
	)

	assert missing.status_code == 400
	assert inverted.status_code == 400


@pytest.mark.asyncio
async def test_point_check(api_client, zones):
	inside = await api_client.post("/zones/point-check", json={"lat": 52.37, "lng": 4.9}, headers=HEADERS)
	outside = await api_client.post("/zones/point-check", json={"lat": 51.0, "lng": 3.0}, headers=HEADERS)

	assert inside.status_code == 200
	assert inside.json()["within_zones"] is True
	assert inside.json()["highest_severity"] == "danger"
	assert outside.json()["within_zones"] is False
	assert outside.json()["zones"] == []
