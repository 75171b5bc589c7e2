"""
Snapshot Camera Driver - Picamera2 Implementation

This driver implements the CaptureSource interface using the Picamera2
library, which returns a still image directly instead of a frame feed.
Stills are configured square and centre-cropped if the sensor returns a
different aspect ratio.

Hardware Context:
    - Raspberry Pi camera modules (e.g. Sony IMX296 global shutter)
    - Connected via CSI port
    - Camera is held only between open() and the produced still
"""

import logging
import time
from typing import Callable, Optional

import numpy as np

from ..config import SnapshotConfig, DEFAULT_SNAPSHOT_CONFIG
from ..errors import DevicePermissionDenied, InvalidImage, NoDeviceAvailable
from ..interfaces.capture_interface import CaptureSource, RawImage

try:
    from picamera2 import Picamera2
    PICAMERA2_AVAILABLE = True
except ImportError:
    Picamera2 = None
    PICAMERA2_AVAILABLE = False

logger = logging.getLogger(__name__)


def center_crop_square(array: np.ndarray) -> np.ndarray:
    """
    Crop the largest centred square from an (H, W, C) array.

    Args:
        array: Image array

    Returns:
        numpy.ndarray: View of shape (S, S, C) with S = min(H, W)
    """
    height, width = array.shape[:2]
    side = min(height, width)
    top = (height - side) // 2
    left = (width - side) // 2
    return array[top:top + side, left:left + side]


def _default_camera_factory():
    if not PICAMERA2_AVAILABLE:
        raise NoDeviceAvailable(
            "Picamera2 library not available. "
            "Install with: sudo apt install -y python3-picamera2"
        )
    if not Picamera2.global_camera_info():
        raise NoDeviceAvailable("No Picamera2 camera detected")
    return Picamera2()


class SnapshotCapture(CaptureSource):
    """
    Camera-library snapshot capture source.

    The library produces a still on request; there is no continuous feed
    to manage, but the camera is still acquired and must be released.
    """

    name = "snapshot"

    def __init__(
        self,
        snapshot_config: Optional[SnapshotConfig] = None,
        camera_factory: Optional[Callable[[], object]] = None,
    ):
        """
        Initialize snapshot capture.

        Args:
            snapshot_config: Square size and warm-up delay. Defaults to DEFAULT_SNAPSHOT_CONFIG.
            camera_factory: Callable() -> Picamera2-like object. Defaults to Picamera2().
        """
        super().__init__()
        self.snapshot_config = (
            snapshot_config if snapshot_config is not None else DEFAULT_SNAPSHOT_CONFIG
        )
        self.camera_factory = camera_factory or _default_camera_factory
        self.camera = None

    def __repr__(self):
        return (
            f"SnapshotCapture(square_size={self.snapshot_config.square_size}, "
            f"active={self._is_active})"
        )

    def open(self) -> None:
        """
        Acquire and start the camera with a square still configuration.

        Raises:
            DevicePermissionDenied: If the camera device cannot be accessed
            NoDeviceAvailable: If no camera is attached or it cannot be acquired
        """
        if self._is_active:
            logger.warning("Snapshot camera already open")
            return

        try:
            self.camera = self.camera_factory()
            side = self.snapshot_config.square_size
            # BGR888 yields RGB-ordered numpy arrays
            config = self.camera.create_still_configuration(
                main={"size": (side, side), "format": "BGR888"}
            )
            self.camera.configure(config)
            self.camera.start()
            time.sleep(self.snapshot_config.warmup_s)
        except PermissionError as e:
            self.release()
            raise DevicePermissionDenied(f"Camera access denied: {e}") from e
        except NoDeviceAvailable:
            self.release()
            raise
        except Exception as e:
            logger.error(f"Failed to open snapshot camera: {e}", exc_info=True)
            self.release()
            raise NoDeviceAvailable(f"Camera could not be acquired: {e}") from e

        self._is_active = True
        logger.info(f"Snapshot camera started: {self.snapshot_config.square_size}px square")

    def produce_still_image(self) -> RawImage:
        """
        Capture one square still and release the camera.

        Returns:
            RawImage: Square RGB still

        Raises:
            InvalidImage: If the camera is not open or returned an empty array
        """
        if not self._is_active or self.camera is None:
            raise InvalidImage("Snapshot camera is not open")

        try:
            array = self.camera.capture_array("main")
            if array is None or array.size == 0:
                raise InvalidImage("Camera returned an empty still")
            pixels = np.ascontiguousarray(center_crop_square(array[..., :3]))
            logger.info(f"Snapshot captured ({pixels.shape[1]}x{pixels.shape[0]})")
            return RawImage(pixels=pixels, source=self.name)
        finally:
            self.release()

    def release(self) -> None:
        """Stop and close the camera. Idempotent."""
        if self.camera is not None:
            try:
                self.camera.stop()
            except Exception as e:
                logger.debug(f"Error stopping camera: {e}")
            try:
                self.camera.close()
            except Exception as e:
                logger.debug(f"Error closing camera: {e}")
            self.camera = None
            logger.info("Snapshot camera released")
        self._is_active = False
