"""
Live-Stream Camera Driver - OpenCV Implementation

This driver implements the CaptureSource interface on top of an OpenCV
VideoCapture device. A separate grabber thread keeps reading frames so the
UI can render a continuous feed, and a still is copied from the most recent
frame on explicit trigger.

Device Context:
    - Any V4L2 / DirectShow / AVFoundation camera OpenCV can open
    - Preferred device is the environment-facing (rear) camera when present
    - Falls back to the default device when the preferred one is absent
    - Device handle released on capture, on close, and on teardown
"""

import logging
import os
import threading
import time
from typing import Callable, List, Optional

import cv2
import numpy as np

from ..config import CameraConfig, DEFAULT_CAMERA_CONFIG
from ..errors import DevicePermissionDenied, InvalidImage, NoDeviceAvailable
from ..interfaces.capture_interface import CaptureSource, RawImage

logger = logging.getLogger(__name__)

# Consecutive read failures before the grabber gives up on the device
MAX_READ_FAILURES = 30

# How long release() waits for a grabber blocked in device.read()
GRABBER_JOIN_TIMEOUT_S = 2.0


class FrameGrabberThread(threading.Thread):
    """
    Separate thread for continuous frame reads.

    Keeps only the most recent frame. The first successful read (or the
    thread stopping) sets frame_ready so a waiting trigger never blocks on
    a dead device.
    """

    def __init__(
        self,
        device,
        framerate: int = 30,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize grabber thread.

        Args:
            device: Opened cv2.VideoCapture (or compatible) instance
            framerate: Target read rate (FPS)
            stop_event: Event to signal thread to stop
        """
        super().__init__(name="FrameGrabberThread", daemon=True)
        self.device = device
        self.framerate = framerate
        self.stop_event = stop_event or threading.Event()
        self.frame_ready = threading.Event()
        self._lock = threading.Lock()
        self._latest: Optional[dict] = None
        self._frame_count = 0
        self._error_count = 0

    def run(self):
        """Main thread loop - continuously reads frames."""
        logger.info("FrameGrabberThread started")
        consecutive_failures = 0

        try:
            while not self.stop_event.is_set():
                ok, frame = self.device.read()
                if not ok or frame is None:
                    self._error_count += 1
                    consecutive_failures += 1
                    if consecutive_failures >= MAX_READ_FAILURES:
                        logger.error("Camera stopped delivering frames")
                        break
                    time.sleep(0.01)
                    continue

                consecutive_failures = 0
                with self._lock:
                    self._latest = {
                        'array': frame,
                        'timestamp': time.time(),
                        'frame_number': self._frame_count,
                    }
                self._frame_count += 1
                self.frame_ready.set()

                time.sleep(1.0 / self.framerate)

        except Exception as e:
            logger.error(f"FrameGrabberThread error: {e}", exc_info=True)
        finally:
            # Wake any waiter even if no frame ever arrived
            self.frame_ready.set()
            logger.info(
                f"FrameGrabberThread stopped ({self._frame_count} frames, "
                f"{self._error_count} read errors)"
            )

    def latest(self) -> Optional[dict]:
        """Most recent frame record, or None."""
        with self._lock:
            return self._latest

    @property
    def frame_count(self) -> int:
        return self._frame_count


class StreamCapture(CaptureSource):
    """
    Live camera stream capture source.

    open() acquires the device and starts the grabber; produce_still_image()
    copies the current frame at native resolution and releases the device.
    """

    name = "stream"

    def __init__(
        self,
        camera_config: Optional[CameraConfig] = None,
        device_factory: Optional[Callable[[int], object]] = None,
    ):
        """
        Initialize live-stream capture.

        Args:
            camera_config: Device indices and resolution. Defaults to DEFAULT_CAMERA_CONFIG.
            device_factory: Callable(index) -> VideoCapture-like object. Defaults to cv2.VideoCapture.
        """
        super().__init__()
        self.camera_config = camera_config if camera_config is not None else DEFAULT_CAMERA_CONFIG
        self.device_factory = device_factory or cv2.VideoCapture
        self.device = None
        self.device_index: Optional[int] = None
        self.grabber: Optional[FrameGrabberThread] = None
        self.stop_event: Optional[threading.Event] = None

    def __repr__(self):
        return (
            f"StreamCapture(device={self.device_index}, "
            f"resolution={self.camera_config.resolution}, "
            f"active={self._is_active})"
        )

    def _candidate_indices(self) -> List[int]:
        cfg = self.camera_config
        indices = []
        for idx in (cfg.preferred_device, cfg.fallback_device):
            if idx is not None and idx not in indices:
                indices.append(idx)
        return indices

    def _check_permission(self, index: int) -> None:
        node = self.camera_config.device_node_pattern.format(index=index)
        if os.path.exists(node) and not os.access(node, os.R_OK | os.W_OK):
            raise DevicePermissionDenied(f"No read/write access to {node}")

    def open(self) -> None:
        """
        Acquire the preferred camera (or the fallback) and start the feed.

        Raises:
            DevicePermissionDenied: If a candidate device is present but not accessible
            NoDeviceAvailable: If no candidate device could be opened
        """
        if self._is_active:
            logger.warning("Camera stream already open")
            return

        for index in self._candidate_indices():
            self._check_permission(index)

            device = self.device_factory(index)
            if not device.isOpened():
                device.release()
                logger.info(f"Camera {index} not available, trying next device")
                continue

            width, height = self.camera_config.resolution
            device.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            device.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

            self.device = device
            self.device_index = index
            self.stop_event = threading.Event()
            self.grabber = FrameGrabberThread(
                device=device,
                framerate=self.camera_config.framerate,
                stop_event=self.stop_event,
            )
            self.grabber.start()
            self._is_active = True
            logger.info(f"Camera stream opened on device {index}")
            return

        raise NoDeviceAvailable(
            f"No camera could be opened (tried {self._candidate_indices()})"
        )

    def latest_frame(self) -> Optional[np.ndarray]:
        """Most recent frame as RGB, for the live preview."""
        if not self._is_active or self.grabber is None:
            return None
        record = self.grabber.latest()
        if record is None:
            return None
        return cv2.cvtColor(record['array'], cv2.COLOR_BGR2RGB)

    def produce_still_image(self) -> RawImage:
        """
        Copy the current frame into a still and release the camera.

        Blocks until the first frame has arrived (or the grabber stops).
        Only the stream this call started on is read and released; if the
        source was released and reopened meanwhile, the new stream is left
        untouched.

        Returns:
            RawImage: RGB still at the camera's native resolution

        Raises:
            InvalidImage: If the stream is not open or delivered no frame
        """
        grabber = self.grabber
        device_index = self.device_index
        if not self._is_active or grabber is None:
            raise InvalidImage("Camera stream is not open")

        try:
            grabber.frame_ready.wait()
            record = grabber.latest()
            if record is None or record['array'].size == 0:
                raise InvalidImage("Camera delivered no frame")

            pixels = cv2.cvtColor(record['array'].copy(), cv2.COLOR_BGR2RGB)
            logger.info(
                f"Captured frame #{record['frame_number']} "
                f"({pixels.shape[1]}x{pixels.shape[0]}) from device {device_index}"
            )
            return RawImage(pixels=pixels, source=self.name, timestamp=record['timestamp'])
        finally:
            if self.grabber is grabber:
                self.release()
            else:
                logger.info("Stream reopened during capture, leaving new device open")

    def release(self) -> None:
        """Stop the grabber and release the device. Idempotent."""
        if self.stop_event is not None:
            self.stop_event.set()

        if self.grabber is not None and self.grabber.is_alive():
            self.grabber.join(timeout=GRABBER_JOIN_TIMEOUT_S)
            if self.grabber.is_alive():
                logger.warning("FrameGrabberThread did not stop within timeout")
        self.grabber = None

        if self.device is not None:
            try:
                self.device.release()
            except Exception as e:
                logger.debug(f"Error releasing camera: {e}")
            logger.info(f"Camera device {self.device_index} released")
            self.device = None

        self.device_index = None
        self.stop_event = None
        self._is_active = False
