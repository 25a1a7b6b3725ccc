import pytest

from tile_mirror.models.geo_bbox import GeoBoundingBox

POLAND = GeoBoundingBox(min_lat=49.0061, min_lon=14.1213, max_lat=54.8357, max_lon=24.1533)


@pytest.mark.parametrize("x,y,z,contains", [
    (8, 5, 4, True),
    (9, 5, 4, True),
    (8, 4, 4, False),
    (8, 6, 4, False),
    (285, 168, 9, True),
])
def test_contains_tile_reference_values(x, y, z, contains):
    assert POLAND.contains_tile(x, y, z) is contains


def test_from_dict():
    bbox = GeoBoundingBox.from_dict({
        'minLat': 49.0061, 'minLon': 14.1213, 'maxLat': 54.8357, 'maxLon': 24.1533,
    })
    assert bbox == POLAND


class TestBoundaryInclusivity:
    """Boxes touching a tile edge count as containing it"""

    def test_column_touching_at_meridian(self):
        bbox = GeoBoundingBox(min_lat=10.0, min_lon=0.0, max_lat=20.0, max_lon=10.0)
        # Column 0 at zoom 1 ends exactly at longitude 0
        assert bbox.contains_column(0, 1)
        assert bbox.contains_column(1, 1)

    def test_row_touching_at_equator(self):
        bbox = GeoBoundingBox(min_lat=0.0, min_lon=10.0, max_lat=10.0, max_lon=20.0)
        # Row 1 at zoom 1 starts exactly at the equator
        assert bbox.contains_row(0, 1)
        assert bbox.contains_row(1, 1)
        assert bbox.contains_tile(1, 1, 1)

    def test_just_past_the_edge_is_outside(self):
        bbox = GeoBoundingBox(min_lat=0.001, min_lon=0.001, max_lat=10.0, max_lon=10.0)
        assert not bbox.contains_column(0, 1)
        assert not bbox.contains_row(1, 1)
        assert not bbox.contains_tile(0, 1, 1)


@pytest.mark.parametrize("bbox", [
    POLAND,
    GeoBoundingBox(min_lat=-10.0, min_lon=-20.0, max_lat=5.0, max_lon=3.0),
    GeoBoundingBox(min_lat=0.0, min_lon=0.0, max_lat=0.0, max_lon=0.0),
])
def test_contains_tile_is_column_and_row(bbox):
    for z in range(6):
        n = 1 << z
        for x in range(n):
            for y in range(n):
                expected = bbox.contains_column(x, z) and bbox.contains_row(y, z)
                assert bbox.contains_tile(x, y, z) == expected


def test_whole_world_box_contains_everything():
    world = GeoBoundingBox(min_lat=-90.0, min_lon=-180.0, max_lat=90.0, max_lon=180.0)
    for x in range(8):
        for y in range(8):
            assert world.contains_tile(x, y, 3)


def test_bbox_is_immutable():
    with pytest.raises(AttributeError):
        POLAND.min_lat = 0.0
