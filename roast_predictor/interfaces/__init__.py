"""
Capture Abstraction Interfaces

This module provides the abstract base class that defines the standard
interface for image acquisition. Concrete implementations are provided in
the Drivers/ directory.

Interfaces:
    - CaptureSource: Standard interface for producing a still image
    - RawImage: Still bitmap handed from a capture source to the session
"""

from .capture_interface import CaptureSource, RawImage

__all__ = ['CaptureSource', 'RawImage']
