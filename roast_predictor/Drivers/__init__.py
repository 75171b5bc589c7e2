"""
Pipeline Drivers Module

This module contains concrete implementations of the capture interface
defined in interfaces/, plus the preprocessing, model loading and inference
stages of the roast classification pipeline.

Drivers:
    - StreamCapture: Live OpenCV camera stream with background frame grabber
    - SnapshotCapture: Picamera2 square still capture
    - FileCapture: Pillow-decoded local image file
    - MockCapture: Synthetic test pattern for testing without hardware
    - Preprocessor / Tensor: RawImage -> (1, 256, 256, 3) float tensor
    - ModelLoader / RoastModel: TFLite artifact lifecycle
    - InferenceEngine: Forward pass and label mapping
"""

from .file_capture import FileCapture
from .mock_camera import MockCapture
from .model_loader import ModelLoader, ModelStatus, RoastModel
from .picamera_snapshot import SnapshotCapture
from .preprocessing import Preprocessor, Tensor
from .vision_inference import InferenceEngine, PredictionResult, classify, top_k
from .webcam_stream import StreamCapture
from .capture_factory import create_capture_source

__all__ = [
    'StreamCapture', 'SnapshotCapture', 'FileCapture', 'MockCapture',
    'Preprocessor', 'Tensor',
    'ModelLoader', 'ModelStatus', 'RoastModel',
    'InferenceEngine', 'PredictionResult', 'classify', 'top_k',
    'create_capture_source',
]
