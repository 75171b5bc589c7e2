"""
File-selection capture source.

Decodes a user-chosen image file with Pillow. There is no device to hold;
the only transient resource is the open file, which is closed as soon as
the pixels are decoded. release() revokes the selection.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import ImageDecodeFailure, InvalidImage
from ..interfaces.capture_interface import CaptureSource, RawImage

logger = logging.getLogger(__name__)


class FileCapture(CaptureSource):
    """Produces a still from a selected local image file."""

    name = "file"

    def __init__(self, path: Optional[Union[str, Path]] = None):
        super().__init__()
        self.path: Optional[Path] = None
        if path is not None:
            self.select(path)

    def __repr__(self):
        return f"FileCapture(path={str(self.path) if self.path else None!r})"

    def select(self, path: Union[str, Path]) -> None:
        """Choose the file the next still is decoded from."""
        self.path = Path(path)
        logger.info(f"Selected image file: {self.path}")

    def open(self) -> None:
        """Mark the selection active. No device is acquired."""
        self._is_active = True

    def produce_still_image(self) -> RawImage:
        """
        Decode the selected file into an RGB still.

        EXIF orientation is applied so phone photos are upright.

        Raises:
            InvalidImage: If no file has been selected
            ImageDecodeFailure: If the file is missing or not a decodable image
        """
        if self.path is None:
            raise InvalidImage("No image file selected")

        try:
            with Image.open(self.path) as img:
                img = ImageOps.exif_transpose(img)
                pixels = np.asarray(img.convert("RGB"), dtype=np.uint8)
        except (FileNotFoundError, IsADirectoryError, UnidentifiedImageError, OSError) as e:
            raise ImageDecodeFailure(f"Could not decode {self.path}: {e}") from e

        logger.info(f"Decoded {self.path.name} ({pixels.shape[1]}x{pixels.shape[0]})")
        return RawImage(pixels=pixels, source=self.name)

    def release(self) -> None:
        """Revoke the selection. Idempotent."""
        if self.path is not None:
            logger.debug(f"Released selection {self.path}")
        self.path = None
        self._is_active = False
