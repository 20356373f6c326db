import logging
import threading

import requests

from globetiles.config import DOWNLOAD_TIMEOUT, USER_AGENT, GlobeConfig
from globetiles.errors import TileNotFoundError, TransportError
from globetiles.tile_utils import TileId, tile_path

logger = logging.getLogger(__name__)


class TileSource:
    """Base class for anything that resolves a tile id to raw image bytes

    Subclasses raise `TileNotFoundError` when the tile does not exist and
    `TransportError` when it could not be read.
    """

    def fetch(self, tile_id: TileId) -> bytes:
        """Read the encoded image for a tile

        Parameters
        ----------
        tile_id : TileId
            Tile to read

        Returns
        -------
        data : bytes
            Encoded (PNG/JPEG) image
        """
        raise NotImplementedError

    def close(self) -> None:
        '''Release connections or handles'''

    def __str__(self):
        return f'{self.__class__.__name__}'


class LocalTileSource(TileSource):
    '''Tiles stored on disk as {root}/{z}/{x}/{y}.{ext}'''

    def __init__(self, root: str, ext: str = 'png'):
        self.root = root
        self.ext = ext

    def fetch(self, tile_id: TileId) -> bytes:
        path = tile_path(self.root, tile_id, self.ext)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise TileNotFoundError(f"no tile at {path}", tile_id) from None
        except OSError as e:
            raise TransportError(f"reading {path} failed: {e}", tile_id) from e

    def __str__(self):
        return f'LocalTileSource : {self.root}'


class RemoteTileSource(TileSource):
    """Tiles downloaded from an XYZ tile server

    Remarks
    -------
    - url_template must include {z}, {x} and {y}
    - One requests.Session per worker thread
    """

    def __init__(self, url_template: str, timeout: float = DOWNLOAD_TIMEOUT,
                 user_agent: str = USER_AGENT):
        self.url_template = url_template
        self.timeout = timeout
        self.user_agent = user_agent
        self._local = threading.local()
        self._sessions = []
        self._sessions_lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = self.user_agent
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def url_for(self, tile_id: TileId) -> str:
        return self.url_template.format(z=tile_id.level, x=tile_id.col, y=tile_id.row)

    def fetch(self, tile_id: TileId) -> bytes:
        url = self.url_for(tile_id)
        try:
            r = self._session().get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}", tile_id) from e

        if r.status_code == 404:
            raise TileNotFoundError(f"GET {url}: 404", tile_id)
        if r.status_code != 200:
            raise TransportError(f"GET {url}: HTTP {r.status_code}", tile_id)
        return r.content

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __str__(self):
        return f'RemoteTileSource : {self.url_template}'


def make_tile_source(config: GlobeConfig) -> TileSource:
    '''Pick the tile source named by the configuration'''
    if config.source == 'local':
        source = LocalTileSource(config.tile_root)
    else:
        source = RemoteTileSource(config.url_template,
                                  timeout=config.fetch_timeout,
                                  user_agent=config.user_agent)
    logger.info("tile source: %s", source)
    return source
