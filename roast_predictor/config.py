"""
Central configuration for the Coffee Roast Predictor.

Model location, preprocessing constants and capture device parameters
are centralized here. Use dataclasses for type safety.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


# --- Project Paths ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
MODELS_DIR = PROJECT_ROOT / "models"
MODEL_PATH = MODELS_DIR / "coffee_roast_classifier.tflite"

# --- ML / TFLite ---
IMG_SIZE = 256
NUM_CLASSES = 4
TFLITE_NUM_THREADS = 4

# Bilinear gives smoother downscaling of photographic input than
# nearest-neighbor and is the policy the model was validated with.
RESIZE_INTERPOLATION = "bilinear"

# --- Capture modes ---
MODE_STREAM = "stream"
MODE_SNAPSHOT = "snapshot"
MODE_FILE = "file"
MODE_MOCK = "mock"
CAPTURE_MODES = (MODE_STREAM, MODE_SNAPSHOT, MODE_FILE, MODE_MOCK)


@dataclass(frozen=True)
class ModelConfig:
    """
    Classification artifact location and interpreter settings.
    """
    model_path: str = ""
    num_threads: int = TFLITE_NUM_THREADS
    input_size: int = IMG_SIZE
    num_classes: int = NUM_CLASSES


@dataclass(frozen=True)
class CameraConfig:
    """
    Live-stream (OpenCV) camera configuration.

    preferred_device is the environment-facing (rear) camera when the
    machine has one; fallback_device is used when it is absent.
    """
    preferred_device: Optional[int] = None
    fallback_device: int = 0
    resolution: Tuple[int, int] = (1280, 720)
    framerate: int = 30
    device_node_pattern: str = "/dev/video{index}"


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Picamera2 snapshot configuration. Stills are square.
    """
    square_size: int = 1088  # IMX296 native height
    warmup_s: float = 0.5


@dataclass(frozen=True)
class CaptureConfig:
    """
    Selects the acquisition variant used by a session.
    """
    mode: str = MODE_STREAM
    mock_resolution: Tuple[int, int] = (640, 480)


# --- Display (desktop app) ---
DISPLAY_WIDTH = 640
DISPLAY_HEIGHT = 480
LIVE_FEED_INTERVAL_MS = 100

# --- Default config instances ---
DEFAULT_MODEL_CONFIG = ModelConfig(model_path=str(MODEL_PATH))
DEFAULT_CAMERA_CONFIG = CameraConfig()
DEFAULT_SNAPSHOT_CONFIG = SnapshotConfig()
DEFAULT_CAPTURE_CONFIG = CaptureConfig()
