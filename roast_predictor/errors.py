"""
Pipeline exceptions.

Drivers raise these; the session controller catches them at its boundary
and translates each into a user-facing ErrorInfo.
"""


class RoastPredictorError(Exception):
    """Base class for all pipeline errors."""

    kind = "RoastPredictorError"
    user_message = "Something went wrong. Please try again."


class ModelLoadFailure(RoastPredictorError):
    """Model artifact unreachable, unreadable, or of the wrong shape."""

    kind = "ModelLoadFailure"
    user_message = "Failed to load model. Please refresh and try again."


class DevicePermissionDenied(RoastPredictorError):
    """Access to the camera device was refused."""

    kind = "DevicePermissionDenied"
    user_message = "Camera access failed. Please ensure you have granted camera permissions."


class NoDeviceAvailable(RoastPredictorError):
    """No camera device could be opened."""

    kind = "NoDeviceAvailable"
    user_message = "No camera found. Connect a camera or upload an image."


class ImageDecodeFailure(RoastPredictorError):
    """A selected file could not be decoded as an image."""

    kind = "ImageDecodeFailure"
    user_message = "Failed to load image."


class InvalidImage(RoastPredictorError):
    """Bitmap has a zero dimension or is not a pixel grid."""

    kind = "InvalidImage"
    user_message = "Could not read the image. Please try again."


class InferenceFailure(RoastPredictorError):
    """The model forward pass failed or returned an unexpected shape."""

    kind = "InferenceFailure"
    user_message = "Prediction failed. Please try again."
