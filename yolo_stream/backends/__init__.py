"""
Optional inference backends for yolo_stream.

Backends live in a separate package so the pre/post-processing core can be
used without installing an inference runtime. Every backend accepts the
pipeline's NHWC tensor (1, H, W, 3) and converts to its native layout.
"""

from __future__ import annotations

__all__ = []
