from dataclasses import dataclass
from typing import Any, Dict

from tile_mirror.utils.tile_calculator import TileCalculator


@dataclass(frozen=True)
class GeoBoundingBox:
    """Rectangular latitude/longitude region in degrees.

    Edges are inclusive: a box whose edge coincides with a tile edge is
    reported as containing that tile.
    """
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoBoundingBox":
        """Build from a ``{minLat, minLon, maxLat, maxLon}`` mapping"""
        return cls(
            min_lat=float(data['minLat']),
            min_lon=float(data['minLon']),
            max_lat=float(data['maxLat']),
            max_lon=float(data['maxLon']),
        )

    def contains_column(self, x: int, zoom: int) -> bool:
        """Whether the longitude span of tile column x overlaps the box"""
        min_lon = TileCalculator.lon_of_left_edge(x, zoom)
        max_lon = TileCalculator.lon_of_left_edge(x + 1, zoom)
        return TileCalculator.spans_overlap(min_lon, max_lon, self.min_lon, self.max_lon)

    def contains_row(self, y: int, zoom: int) -> bool:
        """Whether the latitude span of tile row y overlaps the box"""
        min_lat = TileCalculator.lat_of_top_edge(y + 1, zoom)
        max_lat = TileCalculator.lat_of_top_edge(y, zoom)
        return TileCalculator.spans_overlap(min_lat, max_lat, self.min_lat, self.max_lat)

    def contains_tile(self, x: int, y: int, zoom: int) -> bool:
        return self.contains_column(x, zoom) and self.contains_row(y, zoom)
