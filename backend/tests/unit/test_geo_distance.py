import pytest

from floatr.domain.geo.distance import bearing_deg, bounding_box, haversine_km, km_to_nautical_miles
from floatr.domain.geo.models import BoundingBox, GeoPoint
from floatr.domain.common.errors import ValidationError

AMSTERDAM = (52.3676, 4.9041)
PARIS = (48.8566, 2.3522)


def test_amsterdam_to_paris_is_about_430_km():
	distance = haversine_km(*AMSTERDAM, *PARIS)
	assert distance == pytest.approx(430.0, rel=0.01)


def test_distance_is_symmetric_and_zero_for_same_point():
	assert haversine_km(*AMSTERDAM, *PARIS) == pytest.approx(haversine_km(*PARIS, *AMSTERDAM))
	assert haversine_km(*AMSTERDAM, *AMSTERDAM) == 0.0


def test_nautical_mile_conversion():
	assert km_to_nautical_miles(1.852) == pytest.approx(1.0, rel=1e-3)


def test_bearing_points_roughly_south_west_towards_paris():
	bearing = bearing_deg(*AMSTERDAM, *PARIS)
	assert 180.0 < bearing < 270.0
	assert bearing_deg(0.0, 0.0, 1.0, 0.0) == pytest.approx(0.0)
	assert bearing_deg(0.0, 0.0, 0.0, 1.0) == pytest.approx(90.0)


def test_bounding_box_encloses_radius():
	south, north, west, east = bounding_box(52.0, 5.0, 10.0)
	assert south < 52.0 < north
	assert west < 5.0 < east
	# a point just inside the radius due north must fall in the box
	assert haversine_km(52.0, 5.0, north - 1e-6, 5.0) <= 10.0 + 1e-6


def test_bounding_box_widens_near_antimeridian():
	_, _, west, east = bounding_box(10.0, 179.99, 50.0)
	assert (west, east) == (-180.0, 180.0)


@pytest.mark.parametrize(
	"lat,lng,reason",
	[
		(None, 4.9, "coordinates_required"),
		("abc", 4.9, "coordinates_not_numeric"),
		(91, 4.9, "latitude_out_of_range"),
		(52.0, -180.5, "longitude_out_of_range"),
	],
)
def test_geo_point_rejects_bad_coordinates(lat, lng, reason):
	with pytest.raises(ValidationError) as excinfo:
		GeoPoint.parse(lat, lng)
	assert excinfo.value.reason == reason


def test_bounding_box_rejects_inverted_edges():
	with pytest.raises(ValidationError):
		BoundingBox.parse(north=50, south=51, east=5, west=4)
	with pytest.raises(ValidationError):
		BoundingBox.parse(north=52, south=51, east=4, west=4)
	bbox = BoundingBox.parse(north="52.5", south="52.0", east="5.2", west="4.7")
	assert bbox.to_dict() == {"north": 52.5, "south": 52.0, "east": 5.2, "west": 4.7}
