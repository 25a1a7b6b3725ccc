"""Logging configuration"""
import logging
import sys
from typing import Dict, Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class LoggingManager:
    """Manages application logging configuration"""

    @staticmethod
    def setup_logging(logging_config: Dict[str, str], level_override: Optional[str] = None) -> None:
        """Setup logging based on the ``logging`` section of the configuration"""
        level_name = (level_override or logging_config.get('level', 'INFO')).upper()
        level = getattr(logging, level_name, logging.INFO)
        format_str = logging_config.get('format', DEFAULT_FORMAT)

        logging.basicConfig(
            level=level,
            format=format_str,
            stream=sys.stdout,
        )

        # Set specific loggers
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)
