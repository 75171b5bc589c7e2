"""
Capture Interface - Abstract Base Class for Still Image Sources

This interface defines the standard contract for image acquisition in the
pipeline. All capture variants (live stream, camera snapshot, file
selection) must conform to this interface so the session controller never
branches on the acquisition mode.

Device Context:
    - Live stream: OpenCV VideoCapture on a V4L2 device, continuous feed
    - Snapshot: Picamera2 still capture, fixed square aspect ratio
    - File: user-selected image decoded with Pillow
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
import logging
import time

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RawImage:
    """
    A single still bitmap.

    Attributes:
        pixels: RGB array (H, W, 3), uint8
        source: Name of the capture source that produced it
        timestamp: Capture time (time.time())
    """
    pixels: np.ndarray
    source: str = "unknown"
    timestamp: float = field(default_factory=time.time)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 1 else 0

    def __repr__(self):
        return f"RawImage(source={self.source!r}, shape={tuple(self.pixels.shape)})"


class CaptureSource(ABC):
    """
    Abstract base class defining the interface for still image sources.

    Lifecycle:
        open() -> produce_still_image() -> release()

    release() must be idempotent and is also called from __exit__, so the
    device is freed on every exit path. A failed open() must leave the
    source inactive with no device held.
    """

    name = "capture"

    def __init__(self):
        """Initialize the capture source."""
        self._is_active = False

    @abstractmethod
    def open(self) -> None:
        """
        Acquire whatever the source needs to produce an image.

        Raises:
            DevicePermissionDenied: If the device exists but access is refused
            NoDeviceAvailable: If no usable device is present
        """
        pass

    @abstractmethod
    def produce_still_image(self) -> RawImage:
        """
        Produce one still image.

        Returns:
            RawImage: RGB still

        Raises:
            InvalidImage: If no usable frame could be obtained
            ImageDecodeFailure: If a selected file cannot be decoded
        """
        pass

    @abstractmethod
    def release(self) -> None:
        """
        Release device handles and transient resources.

        Must be idempotent (safe to call multiple times).
        """
        pass

    def latest_frame(self) -> Optional[np.ndarray]:
        """Most recent preview frame (RGB), or None if the source has no feed."""
        return None

    @property
    def is_active(self) -> bool:
        """True while a device handle (or selection) is held."""
        return self._is_active

    def __enter__(self):
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures release on exit."""
        try:
            self.release()
        except Exception as e:
            logger.error(f"Error during capture source release: {e}", exc_info=True)
