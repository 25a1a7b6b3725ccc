import argparse
import logging
import os
import signal
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import requests

from tile_mirror.core.cancellation import CancellationToken
from tile_mirror.core.pyramid_traverser import PyramidTraverser, TraversalResult
from tile_mirror.infrastructure.logging import LoggingManager
from tile_mirror.models.tile_server import MirrorConfig
from tile_mirror.services.config_service import CONFIG_ENV_VAR, ConfigService
from tile_mirror.services.content_store import LocalContentStore
from tile_mirror.services.tile_fetch_service import TileFetchService
from tile_mirror.exceptions.tile_mirror_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DATASTORE_ENV_VAR = 'TILE_MIRROR_DATASTORE'
WRITERINFO_ENV_VAR = 'TILE_MIRROR_WRITERINFO'
NEW_WRITERINFO_ENV_VAR = 'TILE_MIRROR_NEW_WRITERINFO'


class TileMirrorManager:
    """Wires configuration, store, fetcher and traverser for one run"""

    def __init__(self, environ: Optional[Dict[str, str]] = None,
                 session: Optional[requests.Session] = None):
        self.environ = dict(os.environ) if environ is None else environ
        self.session = session
        self.config_service = ConfigService()

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog='tile-mirror',
            description=(
                'Mirror a tiled raster map service into a content-addressed store.\n'
                '- The whole planet is mirrored up to planetMaxZoom, detailed regions up to their own maxZoom.'
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=(
                'Examples:\n\n'
                '1) Start a new mirror with the built-in configuration:\n'
                f'   {DATASTORE_ENV_VAR}=./store tile-mirror --new-writer-info\n\n'
                '2) Continue writing to an existing mirror:\n'
                f'   {DATASTORE_ENV_VAR}=./store {WRITERINFO_ENV_VAR}=<writer info> tile-mirror --config mirror.json\n\n'
                '3) Show how many tiles each zoom level would fetch:\n'
                '   tile-mirror --config mirror.json --plan\n\n'
                'Notes:\n'
                f'- Inline JSON configuration can be passed through {CONFIG_ENV_VAR}.\n'
                '- Tiles are stored under <z>/<x>/<file name from the tile URL>.'
            )
        )
        parser.add_argument('--config', help='Path to a JSON configuration file')
        parser.add_argument('--datastore', help=f'Store location (default: ${DATASTORE_ENV_VAR})')
        parser.add_argument('--writer-info', help=f'Writer info of an existing mirror (default: ${WRITERINFO_ENV_VAR})')
        parser.add_argument('--new-writer-info', action='store_true',
                            help=f'Create a new mirror root (also enabled by a non-empty ${NEW_WRITERINFO_ENV_VAR})')
        parser.add_argument('--plan', action='store_true',
                            help='Print per-zoom tile counts without fetching anything')
        parser.add_argument('--log-level', help='Override the configured log level (e.g. DEBUG)')
        return parser

    def run_from_command_line(self, argv: Optional[List[str]] = None) -> Optional[TraversalResult]:
        args = self.build_parser().parse_args(argv)

        config = self.config_service.load_default(args.config, self.environ)
        LoggingManager.setup_logging(config.logging_config, args.log_level)

        if args.plan:
            self.print_plan(config)
            return None

        location = args.datastore or self.environ.get(DATASTORE_ENV_VAR, '')
        if not location:
            raise ConfigurationError(f"Store location missing: pass --datastore or set {DATASTORE_ENV_VAR}")

        new_writer_info = args.new_writer_info or bool(self.environ.get(NEW_WRITERINFO_ENV_VAR))
        writer_info = None
        if not new_writer_info:
            writer_info = args.writer_info or self.environ.get(WRITERINFO_ENV_VAR)
            if not writer_info:
                raise ConfigurationError(
                    f"Writer info missing: set {WRITERINFO_ENV_VAR} or pass --new-writer-info"
                )

        token = CancellationToken()
        with self.cancel_on_signals(token):
            return self.mirror(config, location, writer_info, token)

    def mirror(self, config: MirrorConfig, location: str, writer_info: Optional[str],
               token: CancellationToken) -> TraversalResult:
        """Run one traversal against the store at ``location``"""
        with LocalContentStore(location, writer_info) as store:
            if store.created:
                print("Created new workspace:")
                print(f"  Entrypoint: {store.root_entrypoint()}")
                print(f"  WriterInfo: {store.root_writer_info()}")

            fetcher = TileFetchService(
                server=config.server,
                store=store,
                timeout=config.request_timeout,
                backoff_unit=config.backoff_unit,
                max_retries=config.max_retries,
                session=self.session,
            )
            traverser = PyramidTraverser(config, fetcher, commit=store.flush)
            result = traverser.process(token)

        print(f"\nMirrored {result.tiles_fetched} tiles across {result.layers_completed} zoom levels.")
        return result

    def print_plan(self, config: MirrorConfig) -> None:
        traverser = PyramidTraverser(config, fetcher=None, commit=lambda: None)
        total = 0
        print(f"Zoom levels 0-{traverser.effective_max_zoom} (planet up to {config.planet_max_zoom}):")
        for layer in traverser.plan():
            total += layer.tiles
            kind = "regions" if layer.constrained else "planet"
            print(f"  z={layer.zoom:<3} {kind:<8} columns={layer.columns:<8} tiles={layer.tiles}")
        print(f"Total tiles: {total}")

    @staticmethod
    @contextmanager
    def cancel_on_signals(token: CancellationToken) -> Iterator[None]:
        """Turn SIGINT/SIGTERM into a cooperative cancel for the duration of a run"""
        def handler(signum, frame):
            logger.warning("Received signal %d, stopping after the current step", signum)
            token.cancel(f"signal {signum}")

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[signum] = signal.signal(signum, handler)
            except ValueError:
                # Not running in the main thread
                pass
        try:
            yield
        finally:
            for signum, old_handler in previous.items():
                signal.signal(signum, old_handler)
