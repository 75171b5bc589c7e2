"""
Mock camera for development without hardware.

Simulates a live stream with a synthetic gradient test pattern that shifts
with every frame.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from ..config import DEFAULT_CAPTURE_CONFIG
from ..errors import InvalidImage
from ..interfaces.capture_interface import CaptureSource, RawImage

logger = logging.getLogger(__name__)


def gradient_pattern(width: int, height: int, frame_number: int = 0) -> np.ndarray:
    """
    Generate an RGB test pattern.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        frame_number: Offset that animates the pattern

    Returns:
        numpy.ndarray: (height, width, 3) uint8 array
    """
    ys, xs = np.indices((height, width))
    img = np.empty((height, width, 3), dtype=np.uint8)
    img[..., 0] = (xs + frame_number) % 256
    img[..., 1] = (ys + frame_number) % 256
    img[..., 2] = (xs + ys + frame_number) % 256
    return img


class MockCapture(CaptureSource):
    """
    Mock capture source.

    Behaves like the live stream (open, preview, trigger, release) without
    touching any device.
    """

    name = "mock"

    def __init__(self, resolution: Optional[Tuple[int, int]] = None):
        """Initialize mock camera (no device required)."""
        super().__init__()
        self.resolution = resolution if resolution is not None else DEFAULT_CAPTURE_CONFIG.mock_resolution
        self._mock_frame_counter = 0
        self.open_count = 0
        self.release_count = 0

    def open(self) -> None:
        """Simulate a successful device acquisition."""
        self._is_active = True
        self.open_count += 1
        logger.info(f"[MOCK] Camera opened: {self.resolution}")

    def latest_frame(self) -> Optional[np.ndarray]:
        if not self._is_active:
            return None
        self._mock_frame_counter += 1
        return gradient_pattern(*self.resolution, frame_number=self._mock_frame_counter)

    def produce_still_image(self) -> RawImage:
        if not self._is_active:
            raise InvalidImage("[MOCK] Camera is not open")
        try:
            pixels = gradient_pattern(*self.resolution, frame_number=self._mock_frame_counter)
            return RawImage(pixels=pixels, source=self.name)
        finally:
            self.release()

    def release(self) -> None:
        if self._is_active:
            self.release_count += 1
            logger.debug("[MOCK] Camera released")
        self._is_active = False
