from __future__ import annotations

from functools import lru_cache
from typing import Optional, Protocol, Tuple

import numpy as np


class Canvas(Protocol):
    """
    Drawing surface used by the renderer. Coordinates are pixels, origin top-left.
    """

    @property
    def width(self) -> int:
        ...

    @property
    def height(self) -> int:
        ...

    def resize(self, width: int, height: int) -> None:
        ...

    def clear(self) -> None:
        ...

    def stroke_rect(self, x: float, y: float, width: float, height: float, color: str, line_width: float) -> None:
        ...

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str) -> None:
        ...

    def fill_text(self, text: str, x: float, y: float, color: str) -> None:
        """Draw `text` with its top edge at `y`."""
        ...

    def measure_text(self, text: str) -> float:
        ...


@lru_cache(maxsize=256)
def parse_hex_color(color: str) -> Tuple[int, int, int]:
    """
    "#RRGGBB" or "#RGB" to a BGR tuple (OpenCV order).
    """

    s = color.strip().lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        raise ValueError(f"Unsupported color: {color!r}")
    try:
        r, g, b = int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)
    except ValueError as exc:
        raise ValueError(f"Unsupported color: {color!r}") from exc
    return b, g, r


class OpenCVCanvas:
    """
    Canvas drawing onto a BGR uint8 image with OpenCV.

    With a background set (typically the current video frame), `clear()`
    restores it, so detections end up drawn over the frame. Without one the
    surface clears to black.
    """

    def __init__(
        self,
        width: int = 0,
        height: int = 0,
        *,
        font_scale: float = 0.5,
        font_thickness: int = 1,
    ) -> None:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for OpenCVCanvas. Install with `pip install opencv-python`.") from e

        self._cv2 = cv2
        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self.font_scale = font_scale
        self.font_thickness = font_thickness
        self._background: Optional[np.ndarray] = None
        self.image = np.zeros((max(0, height), max(0, width), 3), dtype=np.uint8)

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    def set_background(self, image_bgr: Optional[np.ndarray]) -> None:
        if image_bgr is None:
            self._background = None
            return
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {image_bgr.shape}")
        self._background = np.ascontiguousarray(image_bgr, dtype=np.uint8).copy()
        self.resize(int(image_bgr.shape[1]), int(image_bgr.shape[0]))

    def resize(self, width: int, height: int) -> None:
        if (width, height) == (self.width, self.height):
            return
        if self._background is not None and self._background.shape[:2] != (height, width):
            self._background = None
        self.image = np.zeros((height, width, 3), dtype=np.uint8)

    def clear(self) -> None:
        if self._background is not None:
            self.image = self._background.copy()
        else:
            self.image[...] = 0

    def stroke_rect(self, x: float, y: float, width: float, height: float, color: str, line_width: float) -> None:
        p1 = (int(round(x)), int(round(y)))
        p2 = (int(round(x + width)), int(round(y + height)))
        thickness = max(1, int(round(line_width)))
        self._cv2.rectangle(self.image, p1, p2, parse_hex_color(color), thickness=thickness)

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str) -> None:
        p1 = (int(round(x)), int(round(y)))
        p2 = (int(round(x + width)), int(round(y + height)))
        self._cv2.rectangle(self.image, p1, p2, parse_hex_color(color), thickness=-1)

    def _text_size(self, text: str) -> Tuple[int, int]:
        (tw, th), _ = self._cv2.getTextSize(text, self.font, self.font_scale, self.font_thickness)
        return int(tw), int(th)

    def measure_text(self, text: str) -> float:
        return float(self._text_size(text)[0])

    def fill_text(self, text: str, x: float, y: float, color: str) -> None:
        _, th = self._text_size(text)
        # putText anchors at the baseline; shift down so `y` is the top edge.
        origin = (int(round(x)), int(round(y)) + th + 2)
        self._cv2.putText(
            self.image,
            text,
            origin,
            self.font,
            self.font_scale,
            parse_hex_color(color),
            thickness=self.font_thickness,
            lineType=self._cv2.LINE_AA,
        )
