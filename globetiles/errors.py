class GlobeTilesError(Exception):
    '''Base class for all globetiles errors'''


class ConfigError(GlobeTilesError, ValueError):
    '''Invalid configuration value'''


class TileFetchError(GlobeTilesError):
    """A tile could not be turned into image data.

    Attributes
    ----------
    tile_id : TileId | None
        Tile that failed, when known
    retryable : bool
        Whether fetching the same tile again can succeed
    """

    retryable = True

    def __init__(self, message: str, tile_id=None):
        super().__init__(message)
        self.tile_id = tile_id

    @property
    def reason(self) -> str:
        return f'{self.__class__.__name__}: {self}'


class TileNotFoundError(TileFetchError):
    '''The source has no tile for this id'''

    retryable = False


class TransportError(TileFetchError):
    '''Network or filesystem failure while reading a tile'''


class TileDecodeError(TileFetchError):
    '''Tile bytes are corrupt or in an unsupported format'''

    retryable = False
