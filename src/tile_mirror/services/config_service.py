import json
import os
from typing import Any, Dict, List, Optional

from tile_mirror.interfaces.tile_server import IConfigLoader
from tile_mirror.models.geo_bbox import GeoBoundingBox
from tile_mirror.models.tile_server import MirrorConfig, Region, TileServer
from tile_mirror.exceptions.tile_mirror_exceptions import ConfigurationError, ValidationError

CONFIG_ENV_VAR = 'TILE_MIRROR_CONFIG'

DEFAULT_CONFIG: Dict[str, Any] = {
    'urlTemplate': 'http://tile-source:8080/tile/{z}/{x}/{y}.png',
    'planetMaxZoom': 9,
    'detailedRegions': [
        {
            'name': 'Poland',
            'geoBBox': {
                'minLat': 49.0061,
                'minLon': 14.1213,
                'maxLat': 54.8357,
                'maxLon': 24.1533,
            },
            'maxZoom': 14,
        },
    ],
}

URL_PLACEHOLDERS = ('{x}', '{y}', '{z}')
BBOX_KEYS = ('minLat', 'minLon', 'maxLat', 'maxLon')


class ConfigService(IConfigLoader):
    """Service for loading and validating mirror configuration"""

    def load_config(self, config_path: str) -> MirrorConfig:
        """Load configuration from JSON file"""
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Config file {config_path} not found!")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError as e:
            raise ConfigurationError(f"Error reading {config_path}: {e}")

        return self.load_config_text(text, origin=config_path)

    def load_config_text(self, text: str, origin: str = "inline config") -> MirrorConfig:
        """Load configuration from a JSON document"""
        try:
            config = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {origin}: {e}")

        if not isinstance(config, dict):
            raise ConfigurationError(f"{origin} must contain a JSON object")

        self.validate_config(config)
        return self._process_config(config)

    def load_default(self, config_path: Optional[str] = None,
                     environ: Optional[Dict[str, str]] = None) -> MirrorConfig:
        """Resolve configuration: explicit file, then environment, then built-in default"""
        if config_path:
            return self.load_config(config_path)

        env = os.environ if environ is None else environ
        inline = env.get(CONFIG_ENV_VAR, '')
        if inline.strip():
            return self.load_config_text(inline, origin=CONFIG_ENV_VAR)

        config = json.loads(json.dumps(DEFAULT_CONFIG))
        self.validate_config(config)
        return self._process_config(config)

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration structure"""
        required_keys = ['urlTemplate', 'planetMaxZoom']

        for key in required_keys:
            if key not in config:
                raise ValidationError(f"Missing required key: {key}")

        url_template = config['urlTemplate']
        if not isinstance(url_template, str):
            raise ValidationError("urlTemplate must be a string")
        missing = [p for p in URL_PLACEHOLDERS if p not in url_template]
        if missing:
            raise ValidationError(f"urlTemplate is missing placeholders: {', '.join(missing)}")

        self._validate_zoom(config['planetMaxZoom'], 'planetMaxZoom')

        regions = config.get('detailedRegions', [])
        if regions is None:
            regions = []
        if not isinstance(regions, list):
            raise ValidationError("detailedRegions must be a list")
        for index, region in enumerate(regions):
            self._validate_region(region, index)

        for key in ('requestTimeout', 'backoffUnit'):
            if key in config and not self._is_number(config[key]):
                raise ValidationError(f"{key} must be a number")
            if key in config and config[key] < 0:
                raise ValidationError(f"{key} must not be negative")

        # requests treats a zero timeout as an immediate failure
        if 'requestTimeout' in config and config['requestTimeout'] == 0:
            raise ValidationError("requestTimeout must be positive")

        max_retries = config.get('maxRetries')
        if max_retries is not None:
            self._validate_zoom(max_retries, 'maxRetries')

        if not isinstance(config.get('headers', {}), dict):
            raise ValidationError("headers must be a dictionary")
        if not isinstance(config.get('logging', {}), dict):
            raise ValidationError("logging must be a dictionary")

        return True

    def _validate_region(self, region: Any, index: int) -> None:
        if not isinstance(region, dict):
            raise ValidationError(f"detailedRegions[{index}] must be a dictionary")

        for key in ('name', 'geoBBox', 'maxZoom'):
            if key not in region:
                raise ValidationError(f"detailedRegions[{index}] is missing key: {key}")

        bbox = region['geoBBox']
        if not isinstance(bbox, dict):
            raise ValidationError(f"detailedRegions[{index}].geoBBox must be a dictionary")
        for key in BBOX_KEYS:
            if not self._is_number(bbox.get(key)):
                raise ValidationError(f"detailedRegions[{index}].geoBBox.{key} must be a number")

        self._validate_zoom(region['maxZoom'], f"detailedRegions[{index}].maxZoom")

    @staticmethod
    def _validate_zoom(value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer")
        if value < 0:
            raise ValidationError(f"{name} must not be negative")

    @staticmethod
    def _is_number(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def _process_config(self, config: Dict[str, Any]) -> MirrorConfig:
        """Convert validated JSON into model objects"""
        server = TileServer(
            url_template=config['urlTemplate'],
            headers=dict(config.get('headers', {})),
        )

        return MirrorConfig(
            server=server,
            planet_max_zoom=config['planetMaxZoom'],
            regions=tuple(self.get_regions(config)),
            request_timeout=float(config.get('requestTimeout', 30)),
            backoff_unit=float(config.get('backoffUnit', 1.0)),
            max_retries=config.get('maxRetries'),
            logging_config=dict(config.get('logging', {})),
        )

    def get_regions(self, config: Dict[str, Any]) -> List[Region]:
        """Get detailed regions in configuration order"""
        return [
            Region(
                name=region_data['name'],
                bbox=GeoBoundingBox.from_dict(region_data['geoBBox']),
                max_zoom=region_data['maxZoom'],
            )
            for region_data in (config.get('detailedRegions') or [])
        ]
