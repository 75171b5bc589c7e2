"""
Image Preprocessor

Converts a RawImage into the fixed-shape normalized tensor the roast
classifier expects: RGB, 256x256, float32 in [0, 1], with a leading batch
dimension of 1.

Resampling is bilinear (cv2.INTER_LINEAR). Nearest-neighbor is faster but
noticeably noisier on photographic bean images, so it is not used.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from ..config import IMG_SIZE, RESIZE_INTERPOLATION
from ..errors import InvalidImage
from ..interfaces.capture_interface import RawImage

logger = logging.getLogger(__name__)

_INTERPOLATION_FLAGS = {
    "bilinear": cv2.INTER_LINEAR,
    "nearest": cv2.INTER_NEAREST,
}


class Tensor:
    """
    Scoped model input.

    Holds the batch array until release(). Use as a context manager so the
    buffer is dropped on every exit path:

        with preprocessor.prepare(image) as tensor:
            scores = engine.predict(model, tensor)
    """

    def __init__(self, data: np.ndarray):
        self._data: Optional[np.ndarray] = data
        self.shape = tuple(data.shape)

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise RuntimeError("Tensor has been released")
        return self._data

    @property
    def released(self) -> bool:
        return self._data is None

    def release(self) -> None:
        """Drop the buffer. Idempotent."""
        self._data = None

    def __repr__(self):
        return f"Tensor(shape={self.shape}, released={self.released})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


def to_rgb_grid(pixels: np.ndarray) -> np.ndarray:
    """
    Interpret a bitmap as an (H, W, 3) integer pixel grid.

    Grayscale is expanded to three channels and an alpha channel is dropped.

    Raises:
        InvalidImage: If the array is not an image or has a zero dimension
    """
    if pixels is None or not isinstance(pixels, np.ndarray):
        raise InvalidImage("Image is not a pixel array")
    if pixels.ndim not in (2, 3) or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise InvalidImage(f"Image has unusable shape {tuple(pixels.shape)}")

    if pixels.dtype != np.uint8:
        pixels = np.clip(pixels, 0, 255).astype(np.uint8)

    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGB)

    channels = pixels.shape[2]
    if channels == 3:
        return pixels
    if channels == 4:
        return np.ascontiguousarray(pixels[..., :3])
    if channels == 1:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGB)
    raise InvalidImage(f"Unsupported channel count {channels}")


class Preprocessor:
    """Deterministic RawImage -> Tensor conversion. Holds no state between calls."""

    def __init__(self, size: int = IMG_SIZE, interpolation: str = RESIZE_INTERPOLATION):
        if interpolation not in _INTERPOLATION_FLAGS:
            raise ValueError(f"Unknown interpolation {interpolation!r}")
        self.size = size
        self.interpolation = interpolation
        self._cv2_flag = _INTERPOLATION_FLAGS[interpolation]

    def __repr__(self):
        return f"Preprocessor(size={self.size}, interpolation={self.interpolation!r})"

    def prepare(self, image: RawImage) -> Tensor:
        """
        Resize, normalize, and batch an image.

        Args:
            image: RGB still

        Returns:
            Tensor: shape (1, size, size, 3), float32 in [0, 1]

        Raises:
            InvalidImage: If the bitmap has zero width/height or is not a pixel grid
        """
        pixels = to_rgb_grid(image.pixels if image is not None else None)

        if pixels.shape[:2] != (self.size, self.size):
            resized = cv2.resize(pixels, (self.size, self.size), interpolation=self._cv2_flag)
        else:
            resized = pixels

        batch = np.expand_dims(resized.astype(np.float32) / 255.0, axis=0)
        logger.debug(f"Prepared tensor {batch.shape} from {pixels.shape[1]}x{pixels.shape[0]} image")
        return Tensor(batch)
