import logging
from typing import List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tile_mirror.core.cancellation import CancellationToken
from tile_mirror.interfaces.tile_server import ITileFetcher
from tile_mirror.interfaces.tile_store import ITileStore
from tile_mirror.models.tile_server import TileCoordinate, TileDelivery, TileServer
from tile_mirror.utils.tile_calculator import TileCalculator
from tile_mirror.exceptions.tile_mirror_exceptions import (
    FetchError,
    RetryLimitExceeded,
    TraversalCancelled,
)

logger = logging.getLogger(__name__)

# A 4xx response seen after this many retries is treated as permanent
CLIENT_ERROR_RETRY_LIMIT = 7
CHUNK_SIZE = 64 * 1024


class _TransientFetchFailure(Exception):
    """One failed attempt that is worth retrying"""
    pass


class TileFetchService(ITileFetcher):
    """Fetches single tiles into the store with exponential backoff.

    Network failures, 5xx and other unsuccessful responses are retried
    forever unless ``max_retries`` is set. A 4xx response is retried too,
    but once it is still returned after ``CLIENT_ERROR_RETRY_LIMIT`` retries
    the tile is given up with a ``FetchError``.
    """

    def __init__(self, server: TileServer, store: ITileStore, timeout: float = 30,
                 backoff_unit: float = 1.0, max_retries: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.server = server
        self.store = store
        self.timeout = timeout
        self.backoff_unit = backoff_unit
        self.max_retries = max_retries
        self.session = session or self.create_session()

    def create_session(self) -> requests.Session:
        """Create session for tile downloads; retries are driven by ``fetch``"""
        session = requests.Session()

        retry_strategy = Retry(
            total=0,
            read=False,
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=4,
            pool_maxsize=4
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def backoff_delay(self, retry: int) -> float:
        """Delay before retry number ``retry + 1``: 1, 2, 4, ... units"""
        return self.backoff_unit * (1 << retry)

    def tile_path(self, coordinate: TileCoordinate, url: str) -> List[str]:
        """Store path of a tile: zoom, column, file name taken from the URL"""
        file_name = TileCalculator.filename_from_url(url) or str(coordinate.y)
        return [str(coordinate.z), str(coordinate.x), file_name]

    def fetch(self, coordinate: TileCoordinate,
              token: Optional[CancellationToken] = None) -> TileDelivery:
        """Fetch a single tile and store it"""
        token = token or CancellationToken()
        url = self.server.get_tile_url(coordinate.z, coordinate.x, coordinate.y)
        path = self.tile_path(coordinate, url)

        retry = 0
        while not token.is_cancelled:
            try:
                content_id, mime_type = self._attempt(url, path, retry)
            except _TransientFetchFailure as e:
                self._wait_before_retry(url, retry, token, str(e))
                retry += 1
                continue

            logger.info("Tile %s stored as %s (%s)", url, content_id, mime_type)
            return TileDelivery(
                coordinate=coordinate,
                url=url,
                content_id=content_id,
                mime_type=mime_type,
                attempts=retry + 1,
            )

        raise TraversalCancelled(f"fetch of {url} cancelled: {token.reason}")

    def _attempt(self, url: str, path: List[str], retry: int) -> Tuple[str, str]:
        logger.info("Fetching tile started: %s (retry %d)", url, retry)

        try:
            response = self.session.get(url, headers=self.server.get_headers(),
                                        timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            logger.error("Error downloading tile %s: %s", url, e)
            raise _TransientFetchFailure(str(e))

        with response:
            status = response.status_code
            if 400 <= status < 500 and retry > CLIENT_ERROR_RETRY_LIMIT:
                logger.error("Invalid tile server response status code for %s: %d %s",
                             url, status, response.reason)
                raise FetchError(url, status, response.reason, retry + 1)

            if status >= 400:
                logger.error("Incorrect http status code when downloading tile %s: %d %s",
                             url, status, response.reason)
                raise _TransientFetchFailure(f"HTTP {status} {response.reason}")

            try:
                return self.store.set_entry_file(path, response.iter_content(chunk_size=CHUNK_SIZE))
            except requests.RequestException as e:
                logger.error("Error reading tile body %s: %s", url, e)
                raise _TransientFetchFailure(str(e))

    def _wait_before_retry(self, url: str, retry: int, token: CancellationToken,
                           last_error: str) -> None:
        if self.max_retries is not None and retry >= self.max_retries:
            raise RetryLimitExceeded(url, retry + 1, last_error)

        delay = self.backoff_delay(retry)
        logger.debug("Retrying %s in %.1fs", url, delay)
        if token.wait(delay):
            raise TraversalCancelled(f"fetch of {url} cancelled: {token.reason}")
