from __future__ import annotations

from typing import Union

import numpy as np

from .frames import Frame
from .letterbox import LetterboxTransform


def letterbox_image(
    pixels: np.ndarray,
    transform: LetterboxTransform,
    pad_value: float = 0.0,
) -> np.ndarray:
    """
    Resize (bilinear) and pad an (H, W, 3) image into model-input size.

    Pixel values are normalized to [0, 1] before padding, so `pad_value` is in
    normalized units. Returns float32 (model_height, model_width, 3).
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox_image(). Install with `pip install opencv-python`.") from e

    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {pixels.shape}")
    h, w = pixels.shape[:2]
    if (w, h) != (transform.source_width, transform.source_height):
        raise ValueError(
            f"Image size {(w, h)} does not match transform source size "
            f"{(transform.source_width, transform.source_height)}"
        )

    image = pixels.astype(np.float32)
    new_size = (transform.resized_width, transform.resized_height)
    if (w, h) != new_size:
        image = cv2.resize(image, new_size, interpolation=cv2.INTER_LINEAR)
    image /= 255.0

    return cv2.copyMakeBorder(
        image,
        transform.pad_y,
        transform.pad_bottom,
        transform.pad_x,
        transform.pad_right,
        cv2.BORDER_CONSTANT,
        value=(pad_value, pad_value, pad_value),
    )


def preprocess(
    frame: Union[Frame, np.ndarray],
    transform: LetterboxTransform,
    pad_value: float = 0.0,
) -> np.ndarray:
    """
    Model-ready NHWC tensor shaped (1, model_height, model_width, 3), float32 in [0, 1].

    `frame` is a `Frame` or a raw RGB (H, W, 3) array.
    """

    pixels = frame.pixels if isinstance(frame, Frame) else np.asarray(frame)
    padded = letterbox_image(pixels, transform, pad_value=pad_value)
    return np.ascontiguousarray(padded[None, ...], dtype=np.float32)
