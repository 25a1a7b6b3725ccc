import math
import posixpath
from urllib.parse import urlsplit


class TileCalculator:
    """Utility class for slippy-map tile coordinate calculations"""

    @staticmethod
    def tiles_per_axis(zoom: int) -> int:
        """Number of tile columns (and rows) at a zoom level"""
        return 1 << zoom

    @staticmethod
    def lon_of_left_edge(x: int, zoom: int) -> float:
        """Longitude of the western edge of tile column x"""
        n = float(1 << zoom)
        return x / n * 360.0 - 180.0

    @staticmethod
    def lat_of_top_edge(y: int, zoom: int) -> float:
        """Latitude of the northern edge of tile row y (inverse Web Mercator)"""
        n = float(1 << zoom)
        rad = math.atan(math.sinh(math.pi * (1 - 2 * y / n)))
        return rad * 180.0 / math.pi

    @staticmethod
    def spans_overlap(a_min: float, a_max: float, b_min: float, b_max: float) -> bool:
        """Inclusive overlap test: spans touching at one edge overlap"""
        return max(a_min, b_min) <= min(a_max, b_max)

    @staticmethod
    def calculate_layer_tile_count(zoom: int) -> int:
        """Total number of tiles in one zoom layer"""
        n = TileCalculator.tiles_per_axis(zoom)
        return n * n

    @staticmethod
    def filename_from_url(url: str) -> str:
        """Last path segment of a tile URL, ignoring any query string"""
        return posixpath.basename(urlsplit(url).path)
