from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Uniform scale + centered padding between source and model-input space.

    The resized image sits at (pad_x, pad_y) inside the model input; when the
    leftover is odd, the extra pixel row/column goes to the right/bottom.
    """

    scale: float
    pad_x: int
    pad_y: int
    source_width: int
    source_height: int
    resized_width: int
    resized_height: int
    model_width: int
    model_height: int

    @property
    def pad_right(self) -> int:
        return self.model_width - self.resized_width - self.pad_x

    @property
    def pad_bottom(self) -> int:
        return self.model_height - self.resized_height - self.pad_y

    def forward(self, y1: float, x1: float, y2: float, x2: float) -> Tuple[float, float, float, float]:
        """
        Map a source-space box into model-input space.
        """

        s = self.scale
        return (
            y1 * s + self.pad_y,
            x1 * s + self.pad_x,
            y2 * s + self.pad_y,
            x2 * s + self.pad_x,
        )

    def invert(self, y1: float, x1: float, y2: float, x2: float) -> Tuple[float, float, float, float]:
        """
        Map a model-space box back to the source image, clamped to its bounds.
        """

        w, h = float(self.source_width), float(self.source_height)
        s = self.scale
        return (
            min(max((y1 - self.pad_y) / s, 0.0), h),
            min(max((x1 - self.pad_x) / s, 0.0), w),
            min(max((y2 - self.pad_y) / s, 0.0), h),
            min(max((x2 - self.pad_x) / s, 0.0), w),
        )

    def invert_boxes(self, boxes: np.ndarray) -> np.ndarray:
        """
        Vectorized `invert` for (N, 4) arrays of (y1, x1, y2, x2). Returns a new array.
        """

        out = np.asarray(boxes, dtype=np.float64).reshape(-1, 4).copy()
        out[:, [0, 2]] = (out[:, [0, 2]] - self.pad_y) / self.scale
        out[:, [1, 3]] = (out[:, [1, 3]] - self.pad_x) / self.scale
        out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0.0, float(self.source_height))
        out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0.0, float(self.source_width))
        return out


def compute_letterbox(
    source_width: int,
    source_height: int,
    model_width: int,
    model_height: int,
) -> LetterboxTransform:
    """
    Compute the letterbox mapping for a source frame and a model input size.

    scale = min(mw / sw, mh / sh); the resized size is rounded half up and
    never exceeds the model size; padding is floor((m - resized) / 2).
    """

    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"Source size must be positive, got {(source_width, source_height)}")
    if model_width <= 0 or model_height <= 0:
        raise ValueError(f"Model size must be positive, got {(model_width, model_height)}")

    scale = min(model_width / source_width, model_height / source_height)
    resized_w = max(1, min(_round_half_up(source_width * scale), int(model_width)))
    resized_h = max(1, min(_round_half_up(source_height * scale), int(model_height)))
    pad_x = (int(model_width) - resized_w) // 2
    pad_y = (int(model_height) - resized_h) // 2

    return LetterboxTransform(
        scale=float(scale),
        pad_x=pad_x,
        pad_y=pad_y,
        source_width=int(source_width),
        source_height=int(source_height),
        resized_width=resized_w,
        resized_height=resized_h,
        model_width=int(model_width),
        model_height=int(model_height),
    )


def invert(
    transform: LetterboxTransform, y1: float, x1: float, y2: float, x2: float
) -> Tuple[float, float, float, float]:
    return transform.invert(y1, x1, y2, x2)
