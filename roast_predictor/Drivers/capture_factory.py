"""
Capture source selection by configuration.
"""

import logging
from typing import Optional

from ..config import (
    CaptureConfig,
    CameraConfig,
    SnapshotConfig,
    DEFAULT_CAPTURE_CONFIG,
    MODE_FILE,
    MODE_MOCK,
    MODE_SNAPSHOT,
    MODE_STREAM,
)
from ..interfaces.capture_interface import CaptureSource
from .file_capture import FileCapture
from .mock_camera import MockCapture
from .picamera_snapshot import SnapshotCapture
from .webcam_stream import StreamCapture

logger = logging.getLogger(__name__)


def create_capture_source(
    capture_config: Optional[CaptureConfig] = None,
    camera_config: Optional[CameraConfig] = None,
    snapshot_config: Optional[SnapshotConfig] = None,
) -> CaptureSource:
    """
    Build the capture source named by capture_config.mode.

    Raises:
        ValueError: If the mode is unknown
    """
    cfg = capture_config if capture_config is not None else DEFAULT_CAPTURE_CONFIG

    if cfg.mode == MODE_STREAM:
        source = StreamCapture(camera_config=camera_config)
    elif cfg.mode == MODE_SNAPSHOT:
        source = SnapshotCapture(snapshot_config=snapshot_config)
    elif cfg.mode == MODE_FILE:
        source = FileCapture()
    elif cfg.mode == MODE_MOCK:
        source = MockCapture(resolution=cfg.mock_resolution)
    else:
        raise ValueError(f"Unknown capture mode: {cfg.mode!r}")

    logger.info(f"Capture source: {source!r}")
    return source
