from tile_mirror.models.geo_bbox import GeoBoundingBox
from tile_mirror.models.tile_server import Region
from tile_mirror.services.region_catalog import RegionCatalog

POLAND = Region(
    name="Poland",
    bbox=GeoBoundingBox(min_lat=49.0061, min_lon=14.1213, max_lat=54.8357, max_lon=24.1533),
    max_zoom=7,
)
CHILE_COAST = Region(
    name="Chile coast",
    bbox=GeoBoundingBox(min_lat=-40.0, min_lon=-74.0, max_lat=-30.0, max_lon=-70.0),
    max_zoom=5,
)


class TestRegionCatalog:
    """Scope queries over detailed regions"""

    def test_effective_max_zoom(self):
        catalog = RegionCatalog([POLAND, CHILE_COAST])
        assert catalog.effective_max_zoom(3) == 7
        assert catalog.effective_max_zoom(9) == 9
        assert RegionCatalog([]).effective_max_zoom(2) == 2

    def test_column_and_tile_in_scope(self):
        catalog = RegionCatalog([POLAND])
        assert catalog.is_column_in_scope(8, 4)
        assert catalog.is_column_in_scope(9, 4)
        assert not catalog.is_column_in_scope(0, 4)
        assert catalog.is_tile_in_scope(8, 5, 4)
        assert not catalog.is_tile_in_scope(8, 4, 4)

    def test_regions_below_zoom_are_ignored(self):
        catalog = RegionCatalog([CHILE_COAST])
        # Columns containing longitude -72 at zoom 5 and 6
        assert catalog.is_column_in_scope(9, 5)
        assert catalog.regions_for_column(9, 5) == ["Chile coast"]
        assert not catalog.is_column_in_scope(19, 6)
        assert catalog.regions_for_column(19, 6) == []

    def test_empty_catalog_has_no_scope(self):
        catalog = RegionCatalog([])
        assert not catalog.is_column_in_scope(0, 0)
        assert not catalog.is_tile_in_scope(0, 0, 0)

    def test_region_order_does_not_matter(self):
        forward = RegionCatalog([POLAND, CHILE_COAST])
        backward = RegionCatalog([CHILE_COAST, POLAND])
        for z in range(6):
            n = 1 << z
            for x in range(n):
                assert forward.is_column_in_scope(x, z) == backward.is_column_in_scope(x, z)
                for y in range(n):
                    assert forward.is_tile_in_scope(x, y, z) == backward.is_tile_in_scope(x, y, z)

    def test_column_pruning_is_sound(self):
        """A pruned column never holds an in-scope tile"""
        catalog = RegionCatalog([POLAND, CHILE_COAST])
        for z in range(1, 7):
            n = 1 << z
            for x in range(n):
                if catalog.is_column_in_scope(x, z):
                    continue
                assert not any(catalog.is_tile_in_scope(x, y, z) for y in range(n))
