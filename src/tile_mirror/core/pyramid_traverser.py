import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from tile_mirror.core.cancellation import CancellationToken
from tile_mirror.interfaces.tile_server import ITileFetcher
from tile_mirror.models.tile_server import MirrorConfig, TileCoordinate, TileDelivery
from tile_mirror.services.region_catalog import RegionCatalog
from tile_mirror.utils.tile_calculator import TileCalculator
from tile_mirror.exceptions.tile_mirror_exceptions import StoreError

logger = logging.getLogger(__name__)


@dataclass
class TraversalResult:
    """Progress counters of one traversal"""
    max_zoom: int
    tiles_fetched: int = 0
    tiles_skipped: int = 0
    columns_skipped: int = 0
    layers_completed: int = 0
    last_delivery: Optional[TileDelivery] = None


@dataclass(frozen=True)
class LayerPlan:
    """Tiles a traversal would fetch at one zoom level"""
    zoom: int
    constrained: bool
    columns: int
    tiles: int


class PyramidTraverser:
    """Walks the tile pyramid zoom by zoom, column by column, row by row.

    Layers up to the planet max zoom are mirrored whole. Deeper layers only
    visit columns and tiles covered by a detailed region that reaches that
    zoom. ``commit`` is called once after every completed layer, so a crash
    loses at most the layer in progress.
    """

    def __init__(self, config: MirrorConfig, fetcher: ITileFetcher,
                 commit: Callable[[], None], catalog: Optional[RegionCatalog] = None):
        self.config = config
        self.fetcher = fetcher
        self.commit = commit
        self.catalog = catalog or RegionCatalog(config.regions)

    @property
    def effective_max_zoom(self) -> int:
        return self.catalog.effective_max_zoom(self.config.planet_max_zoom)

    def is_constrained(self, zoom: int) -> bool:
        return zoom > self.config.planet_max_zoom

    def process(self, token: Optional[CancellationToken] = None) -> TraversalResult:
        """Mirror every in-scope tile; raises TraversalCancelled when stopped"""
        token = token or CancellationToken()
        result = TraversalResult(max_zoom=self.effective_max_zoom)
        logger.info("Mirroring zoom levels 0-%d (planet up to %d, %d detailed regions)",
                    result.max_zoom, self.config.planet_max_zoom, len(self.catalog.regions))

        for zoom in range(result.max_zoom + 1):
            if token.is_cancelled:
                break

            if self.is_constrained(zoom):
                completed = self._gen_z_layer(zoom, token, result)
            else:
                completed = self._gen_z_layer_no_constraints(zoom, token, result)
            if not completed:
                break

            try:
                self.commit()
            except StoreError as e:
                raise StoreError(f"failed to flush the store after zoom {zoom}: {e}") from e
            result.layers_completed += 1
            logger.info("Zoom layer %d completed and flushed (%d tiles fetched so far)",
                        zoom, result.tiles_fetched)

        token.raise_if_cancelled()
        return result

    def _gen_z_layer_no_constraints(self, zoom: int, token: CancellationToken,
                                    result: TraversalResult) -> bool:
        for x in range(TileCalculator.tiles_per_axis(zoom)):
            if token.is_cancelled:
                return False
            if not self._gen_x_layer_no_constraints(x, zoom, token, result):
                return False
        return True

    def _gen_x_layer_no_constraints(self, x: int, zoom: int, token: CancellationToken,
                                    result: TraversalResult) -> bool:
        for y in range(TileCalculator.tiles_per_axis(zoom)):
            if token.is_cancelled:
                return False
            self._fetch(TileCoordinate(zoom, x, y), token, result)
        return True

    def _gen_z_layer(self, zoom: int, token: CancellationToken, result: TraversalResult) -> bool:
        for x in range(TileCalculator.tiles_per_axis(zoom)):
            if token.is_cancelled:
                return False

            # Whole column outside every detailed region
            if not self.catalog.is_column_in_scope(x, zoom):
                logger.debug("Skipping column %d at zoom %d", x, zoom)
                result.columns_skipped += 1
                continue

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Column %d at zoom %d matches regions: %s", x, zoom,
                             ", ".join(self.catalog.regions_for_column(x, zoom)))

            if not self._gen_x_layer(x, zoom, token, result):
                return False
        return True

    def _gen_x_layer(self, x: int, zoom: int, token: CancellationToken,
                     result: TraversalResult) -> bool:
        for y in range(TileCalculator.tiles_per_axis(zoom)):
            if token.is_cancelled:
                return False
            if not self.catalog.is_tile_in_scope(x, y, zoom):
                result.tiles_skipped += 1
                continue
            self._fetch(TileCoordinate(zoom, x, y), token, result)
        return True

    def _fetch(self, coordinate: TileCoordinate, token: CancellationToken,
               result: TraversalResult) -> None:
        delivery = self.fetcher.fetch(coordinate, token)
        result.tiles_fetched += 1
        result.last_delivery = delivery

    def plan(self) -> Iterator[LayerPlan]:
        """Count the columns and tiles each layer would fetch, without fetching"""
        for zoom in range(self.effective_max_zoom + 1):
            n = TileCalculator.tiles_per_axis(zoom)
            if not self.is_constrained(zoom):
                yield LayerPlan(zoom=zoom, constrained=False, columns=n,
                                tiles=TileCalculator.calculate_layer_tile_count(zoom))
                continue

            columns = 0
            tiles = 0
            for x in range(n):
                if not self.catalog.is_column_in_scope(x, zoom):
                    continue
                columns += 1
                tiles += sum(1 for y in range(n) if self.catalog.is_tile_in_scope(x, y, zoom))
            yield LayerPlan(zoom=zoom, constrained=True, columns=columns, tiles=tiles)
