from typing import Iterable, List, Tuple

from tile_mirror.models.tile_server import Region


class RegionCatalog:
    """Read-only query surface over the configured detailed regions.

    A region only takes part in a query when its own max zoom reaches the
    queried zoom. All queries are a plain disjunction over regions, so their
    order only affects how early a query can stop.
    """

    def __init__(self, regions: Iterable[Region]):
        self._regions: Tuple[Region, ...] = tuple(regions)

    @property
    def regions(self) -> Tuple[Region, ...]:
        return self._regions

    def effective_max_zoom(self, planet_max_zoom: int) -> int:
        """Highest zoom level any part of the pyramid is mirrored to"""
        return max([planet_max_zoom] + [r.max_zoom for r in self._regions])

    def is_column_in_scope(self, x: int, zoom: int) -> bool:
        return any(
            region.bbox.contains_column(x, zoom)
            for region in self._regions
            if region.max_zoom >= zoom
        )

    def is_tile_in_scope(self, x: int, y: int, zoom: int) -> bool:
        return any(
            region.bbox.contains_tile(x, y, zoom)
            for region in self._regions
            if region.max_zoom >= zoom
        )

    def regions_for_column(self, x: int, zoom: int) -> List[str]:
        """Names of all regions whose area covers column x (for diagnostics)"""
        return [
            region.name
            for region in self._regions
            if region.max_zoom >= zoom and region.bbox.contains_column(x, zoom)
        ]
