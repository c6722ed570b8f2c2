"""
Frame values and frame providers.

A provider returns `None` from `read()` when it has no frame to give right now
(paused stream, camera warming up, end of a file). The streaming loop treats
that as an idle tick, not an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Union

import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """
    One RGB frame: `pixels` is a uint8 array shaped (height, width, 3).
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise ValueError(f"Expected pixels shape (H, W, 3), got {self.pixels.shape}")
        if self.pixels.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Frame size {(self.width, self.height)} does not match pixels shape {self.pixels.shape[:2]}"
            )

    @classmethod
    def from_rgb(cls, pixels: np.ndarray) -> "Frame":
        h, w = pixels.shape[:2]
        return cls(width=int(w), height=int(h), pixels=pixels)

    @classmethod
    def from_bgr(cls, image_bgr: np.ndarray) -> "Frame":
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
        return cls.from_rgb(np.ascontiguousarray(image_bgr[:, :, ::-1]))

    def to_bgr(self) -> np.ndarray:
        return np.ascontiguousarray(self.pixels[:, :, ::-1])


class FrameProvider(Protocol):
    def read(self) -> Optional[Frame]:
        ...


def load_image(path: Union[str, Path]) -> Frame:
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for load_image(). Install with `pip install opencv-python`.") from e

    img = cv2.imread(str(path))
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return Frame.from_bgr(img)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]
    frame_count: Optional[int]


class OpenCVFrameProvider:
    """
    Frame provider backed by `cv2.VideoCapture`.

    Exactly one of video/webcam/rtsp must be given. For video files the
    provider reports `None` once the file is exhausted and calls
    `on_exhausted` a single time, unless `loop_video` rewinds it.
    """

    def __init__(
        self,
        *,
        video: Optional[str] = None,
        webcam: Optional[int] = None,
        rtsp: Optional[str] = None,
        loop_video: bool = False,
        on_exhausted: Optional[Callable[[], None]] = None,
    ) -> None:
        sources = [video is not None, webcam is not None, rtsp is not None]
        if sum(bool(s) for s in sources) != 1:
            raise ValueError("Exactly one of video/webcam/rtsp must be provided.")
        if loop_video and video is None:
            raise ValueError("loop_video is only valid with a video file.")

        self.video = video
        self.webcam = webcam
        self.rtsp = rtsp
        self.loop_video = loop_video
        self.on_exhausted = on_exhausted
        self.exhausted = False
        self.frames_read = 0
        self._cap = self._open()
        self.info = self._capture_info()

    def _open(self):
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for OpenCVFrameProvider. Install with `pip install opencv-python`.") from e

        if self.video is not None:
            cap = cv2.VideoCapture(self.video)
        elif self.rtsp is not None:
            cap = cv2.VideoCapture(self.rtsp)
        else:
            cap = cv2.VideoCapture(int(self.webcam))

        if not cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {self.video or self.rtsp or self.webcam}")
        return cap

    def _capture_info(self) -> CaptureInfo:
        import cv2  # type: ignore

        fps = self._cap.get(cv2.CAP_PROP_FPS)
        w = self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)
        h = self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
        n = self._cap.get(cv2.CAP_PROP_FRAME_COUNT)
        return CaptureInfo(
            fps=float(fps) if fps and fps > 0 else None,
            width=int(w) if w and w > 0 else None,
            height=int(h) if h and h > 0 else None,
            frame_count=int(n) if n and n > 0 else None,
        )

    def read(self) -> Optional[Frame]:
        if self.exhausted:
            return None

        ok, img = self._cap.read()
        if ok and img is not None:
            self.frames_read += 1
            return Frame.from_bgr(img)

        if self.video is None:
            # Live sources: no frame yet, try again next tick.
            return None

        if self.loop_video:
            LOGGER.debug("Rewinding %s", self.video)
            self._cap.release()
            self._cap = self._open()
            return None

        self.exhausted = True
        LOGGER.info("Reached end of %s after %d frames", self.video, self.frames_read)
        if self.on_exhausted is not None:
            self.on_exhausted()
        return None

    def close(self) -> None:
        self._cap.release()

    def __enter__(self) -> "OpenCVFrameProvider":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
