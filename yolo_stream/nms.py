from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class NMSConfig:
    max_outputs: int = 500
    iou_threshold: float = 0.45
    # Pre-filter, independent of (and usually lower than) the display threshold.
    score_threshold: float = 0.2


def _normalize(boxes: np.ndarray) -> np.ndarray:
    # Corners may come in either order; work on (ymin, xmin, ymax, xmax).
    b = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    return np.stack(
        [
            np.minimum(b[:, 0], b[:, 2]),
            np.minimum(b[:, 1], b[:, 3]),
            np.maximum(b[:, 0], b[:, 2]),
            np.maximum(b[:, 1], b[:, 3]),
        ],
        axis=1,
    )


def iou(box_a: Sequence[float], box_b: Sequence[float]) -> float:
    """
    Intersection over union of two (y1, x1, y2, x2) boxes. Zero-area boxes give 0.
    """

    a, b = _normalize(np.array([box_a, box_b], dtype=np.float64))
    area_a = (a[2] - a[0]) * (a[3] - a[1])
    area_b = (b[2] - b[0]) * (b[3] - b[1])
    if area_a <= 0 or area_b <= 0:
        return 0.0
    ih = max(0.0, min(a[2], b[2]) - max(a[0], b[0]))
    iw = max(0.0, min(a[3], b[3]) - max(a[1], b[1]))
    inter = ih * iw
    return float(inter / (area_a + area_b - inter))


def suppress(
    boxes: np.ndarray,
    scores: np.ndarray,
    max_outputs: int = 500,
    iou_threshold: float = 0.45,
    score_threshold: float = 0.2,
) -> np.ndarray:
    """
    Greedy non-max suppression. Expects boxes (N, 4) as (y1, x1, y2, x2) and scores (N,).

    Returns indices into `boxes` of the kept candidates, highest score first.
    Candidates scoring below `score_threshold` are dropped up front; equal
    scores keep their original index order, so results are reproducible.
    """

    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if scores.size == 0 or max_outputs <= 0:
        return np.empty((0,), dtype=np.int32)

    b = _normalize(boxes)
    if b.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores disagree: {b.shape[0]} boxes vs {scores.shape[0]} scores")

    y1, x1, y2, x2 = b[:, 0], b[:, 1], b[:, 2], b[:, 3]
    areas = (y2 - y1) * (x2 - x1)

    candidates = np.nonzero(scores >= score_threshold)[0]
    order = candidates[np.argsort(-scores[candidates], kind="stable")]
    keep = []

    while order.size > 0 and len(keep) < max_outputs:
        i = order[0]
        keep.append(i)
        rest = order[1:]

        yy1 = np.maximum(y1[i], y1[rest])
        xx1 = np.maximum(x1[i], x1[rest])
        yy2 = np.minimum(y2[i], y2[rest])
        xx2 = np.minimum(x2[i], x2[rest])

        h = np.maximum(0.0, yy2 - yy1)
        w = np.maximum(0.0, xx2 - xx1)
        inter = h * w
        union = areas[i] + areas[rest] - inter
        valid = (areas[i] > 0) & (areas[rest] > 0)
        overlap = np.where(valid, inter / np.where(valid, union, 1.0), 0.0)

        order = rest[overlap <= iou_threshold]

    return np.array(keep, dtype=np.int32)


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig = NMSConfig()) -> np.ndarray:
    return suppress(
        boxes,
        scores,
        max_outputs=cfg.max_outputs,
        iou_threshold=cfg.iou_threshold,
        score_threshold=cfg.score_threshold,
    )
