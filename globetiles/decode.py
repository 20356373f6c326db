from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError

from globetiles.errors import TileDecodeError


class TileDecoder:
    '''Turns encoded tile bytes into an image buffer'''

    def decode(self, data: bytes) -> np.ndarray:
        raise NotImplementedError


class PillowDecoder(TileDecoder):
    """Decode PNG/JPEG tiles with Pillow

    Returns contiguous uint8 arrays of shape (height, width, 3), ready for
    texture upload.
    """

    def decode(self, data: bytes) -> np.ndarray:
        if not data:
            raise TileDecodeError("empty tile data")
        try:
            pil = Image.open(BytesIO(data)).convert("RGB")
            np_img = np.asarray(pil, dtype=np.uint8)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise TileDecodeError(f"cannot decode tile: {e}") from e

        # make sure it's contiguous 3-channel
        if np_img.ndim != 3 or np_img.shape[2] < 3:
            raise TileDecodeError(f"unexpected image shape {np_img.shape}")
        return np.ascontiguousarray(np_img[:, :, :3], dtype=np.uint8)
