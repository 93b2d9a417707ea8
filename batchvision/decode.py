"""Decode raw image payloads into RGBA pixel buffers."""

from __future__ import annotations

from dataclasses import dataclass
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded image as an ``(H, W, 4)`` ``uint8`` RGBA array."""

    data: np.ndarray

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])

    def rgb(self) -> np.ndarray:
        return self.data[:, :, :3]


class ImageDecoder:
    def decode(self, payload: bytes) -> PixelBuffer:
        if not payload:
            raise DecodeError("empty image payload")
        try:
            with Image.open(io.BytesIO(payload)) as im:
                rgba = im.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise DecodeError(f"cannot decode image: {e}") from e
        arr = np.asarray(rgba, dtype=np.uint8)
        return PixelBuffer(data=arr)
