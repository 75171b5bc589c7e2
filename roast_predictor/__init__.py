"""
Coffee Roast Predictor

Classifies a photo of coffee beans as Dark, Green, Light or Medium roast
using a TFLite model, from a live camera, a camera snapshot or an image file.
"""

from .labels import CLASS_LABELS, ClassLabel, RoastLevel

__version__ = "0.1.0"

__all__ = ['CLASS_LABELS', 'ClassLabel', 'RoastLevel', '__version__']
