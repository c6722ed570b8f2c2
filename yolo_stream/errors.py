"""
Error taxonomy for the detection pipeline.

Only configuration and model loading errors reach the caller. Shape mismatches
are fatal for a single frame; the streaming loop logs them and keeps going.
"""

from __future__ import annotations


class DetectorError(Exception):
    """Base class for errors raised by yolo_stream."""


class ModelLoadError(DetectorError, RuntimeError):
    """The model file is missing, unreadable or rejected by the runtime."""


class ShapeMismatchError(DetectorError, ValueError):
    """The engine output does not match the expected prediction layout."""


class ConfigurationError(DetectorError, ValueError):
    """An option value is out of range or has the wrong type."""
