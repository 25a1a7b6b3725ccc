from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional, Tuple

from tile_mirror.models.geo_bbox import GeoBoundingBox


class TileCoordinate(NamedTuple):
    """One tile of the slippy-map quad-tree"""
    z: int
    x: int
    y: int


@dataclass(frozen=True)
class TileServer:
    """Data model for tile server configuration"""
    url_template: str
    headers: Dict[str, str] = field(default_factory=dict)

    def get_tile_url(self, zoom: int, x: int, y: int) -> str:
        """Generate tile URL for given coordinates"""
        url = self.url_template
        url = url.replace('{x}', str(x))
        url = url.replace('{y}', str(y))
        url = url.replace('{z}', str(zoom))
        return url

    def get_headers(self) -> Dict[str, str]:
        """Get request headers"""
        return dict(self.headers)


@dataclass(frozen=True)
class Region:
    """Named high-resolution region mirrored up to its own max zoom"""
    name: str
    bbox: GeoBoundingBox
    max_zoom: int


@dataclass(frozen=True)
class MirrorConfig:
    """Data model for one mirroring run"""
    server: TileServer
    planet_max_zoom: int
    regions: Tuple[Region, ...] = ()
    request_timeout: float = 30.0
    backoff_unit: float = 1.0
    max_retries: Optional[int] = None
    logging_config: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TileDelivery:
    """Outcome of a successful tile fetch"""
    coordinate: TileCoordinate
    url: str
    content_id: str
    mime_type: str
    attempts: int
