from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from tile_mirror.core.cancellation import CancellationToken
from tile_mirror.models.tile_server import TileCoordinate, TileDelivery


class ITileFetcher(ABC):
    """Interface for fetching a single tile into the store"""

    @abstractmethod
    def fetch(self, coordinate: TileCoordinate,
              token: Optional[CancellationToken] = None) -> TileDelivery:
        """Fetch one tile, retrying until success, fatal error or cancellation"""
        pass


class IConfigLoader(ABC):
    """Interface for configuration loading"""

    @abstractmethod
    def load_config(self, config_path: str) -> Any:
        """Load configuration from file"""
        pass

    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration"""
        pass
