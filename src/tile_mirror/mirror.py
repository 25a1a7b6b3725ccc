#!/usr/bin/env python3
"""
Tile Mirror - Main Entry Point
Mirrors the tile pyramid of a map service into a content-addressed store
"""

import logging
import sys
from typing import List, Optional

from tile_mirror.core.tile_mirror_manager import TileMirrorManager
from tile_mirror.exceptions.tile_mirror_exceptions import TileMirrorException, TraversalCancelled

EXIT_CANCELLED = 130


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the tile mirror application"""
    logger = logging.getLogger(__name__)
    try:
        manager = TileMirrorManager()
        manager.run_from_command_line(argv)

    except (TraversalCancelled, KeyboardInterrupt):
        print("\nMirroring interrupted.", file=sys.stderr)
        sys.exit(EXIT_CANCELLED)
    except TileMirrorException as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error")
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        print("Please check your configuration and try again.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
