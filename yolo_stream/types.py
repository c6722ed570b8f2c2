from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .config import DetectorConfig, is_displayed


@dataclass(frozen=True)
class Detection:
    """
    Final detection in original image coordinates.

    Boxes follow the (y1, x1, y2, x2) order used across the pipeline.
    """

    y1: float
    x1: float
    y2: float
    x2: float
    score: float
    class_id: int
    label: str

    def as_yxyx(self) -> Tuple[float, float, float, float]:
        return self.y1, self.x1, self.y2, self.x2

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


@dataclass(frozen=True)
class RawCandidate:
    """
    One decoded prediction row in model-input space.
    """

    y1: float
    x1: float
    y2: float
    x2: float
    score: float
    class_id: int

    def as_yxyx(self) -> Tuple[float, float, float, float]:
        return self.y1, self.x1, self.y2, self.x2


@dataclass(frozen=True)
class Candidates:
    """
    Decoded predictions as aligned arrays.

    boxes: (N, 4) float32 as (y1, x1, y2, x2) in model-input pixels
    scores: (N,) best class score per row
    class_ids: (N,) argmax class per row
    """

    boxes: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def __getitem__(self, index: int) -> RawCandidate:
        y1, x1, y2, x2 = (float(v) for v in self.boxes[index])
        return RawCandidate(
            y1=y1,
            x1=x1,
            y2=y2,
            x2=x2,
            score=float(self.scores[index]),
            class_id=int(self.class_ids[index]),
        )

    def __iter__(self) -> Iterator[RawCandidate]:
        for i in range(len(self)):
            yield self[i]

    @classmethod
    def empty(cls) -> "Candidates":
        return cls(
            boxes=np.empty((0, 4), dtype=np.float32),
            scores=np.empty((0,), dtype=np.float32),
            class_ids=np.empty((0,), dtype=np.int64),
        )


@dataclass(frozen=True)
class FrameResult:
    """
    Detections for one frame, ordered by descending score.
    """

    detections: Tuple[Detection, ...] = ()
    width: Optional[int] = None
    height: Optional[int] = None

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self.detections)

    @property
    def boxes(self) -> List[float]:
        flat: List[float] = []
        for det in self.detections:
            flat.extend(det.as_yxyx())
        return flat

    @property
    def scores(self) -> List[float]:
        return [det.score for det in self.detections]

    @property
    def classes(self) -> List[int]:
        return [det.class_id for det in self.detections]

    @property
    def labels(self) -> List[str]:
        return [det.label for det in self.detections]

    def to_payload(self) -> Dict[str, list]:
        return {
            "boxes": self.boxes,
            "scores": self.scores,
            "classes": self.classes,
            "labels": self.labels,
        }

    def for_display(self, config: DetectorConfig) -> "FrameResult":
        """
        Copy that keeps only detections passing the display gate of `config`.
        """

        kept = tuple(det for det in self.detections if is_displayed(det, config))
        return FrameResult(detections=kept, width=self.width, height=self.height)
