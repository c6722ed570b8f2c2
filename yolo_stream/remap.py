from __future__ import annotations

from typing import Sequence

import numpy as np

from .labels import label_for
from .letterbox import LetterboxTransform
from .types import Candidates, Detection, FrameResult


def remap(
    candidates: Candidates,
    keep: np.ndarray,
    transform: LetterboxTransform,
    labels: Sequence[str],
) -> FrameResult:
    """
    Turn the kept candidates into detections in original image coordinates.

    `keep` is the index order produced by `suppress` and is preserved.
    Class ids outside `labels` get the "unknown" label.
    """

    keep = np.asarray(keep, dtype=np.int64).reshape(-1)
    if keep.size == 0:
        return FrameResult(width=transform.source_width, height=transform.source_height)

    boxes = transform.invert_boxes(candidates.boxes[keep])
    scores = candidates.scores[keep]
    class_ids = candidates.class_ids[keep]

    detections = tuple(
        Detection(
            y1=float(y1),
            x1=float(x1),
            y2=float(y2),
            x2=float(x2),
            score=float(score),
            class_id=int(cls_id),
            label=label_for(int(cls_id), labels),
        )
        for (y1, x1, y2, x2), score, cls_id in zip(boxes, scores, class_ids)
    )
    return FrameResult(detections=detections, width=transform.source_width, height=transform.source_height)
