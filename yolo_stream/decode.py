from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .errors import ShapeMismatchError
from .types import Candidates


def _drop_batch(raw: np.ndarray) -> np.ndarray:
    p = np.asarray(raw)
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
        p = p[0]
    if p.ndim != 2:
        raise ShapeMismatchError(f"Unsupported YOLO output shape: {np.shape(raw)}")
    return p


def infer_num_classes(output_shape: Sequence[int], num_labels: Optional[int] = None) -> int:
    """
    Number of classes in a raw YOLO output shape.

    With `num_labels`, an axis of size 4 + num_labels is taken as the channel
    axis, so short row-major outputs like (1, 50, 84) resolve correctly.
    Otherwise the channel axis is assumed to be the smaller of the two, as in
    (1, 84, 8400) exports; equal axes cannot be told apart and are rejected.
    """

    dims = [int(d) for d in output_shape]
    if len(dims) == 3:
        if dims[0] != 1:
            raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {tuple(dims)}).")
        dims = dims[1:]
    if len(dims) != 2:
        raise ShapeMismatchError(f"Unsupported YOLO output shape: {tuple(output_shape)}")

    if num_labels is not None and num_labels > 0 and 4 + int(num_labels) in dims:
        return int(num_labels)

    if dims[0] == dims[1]:
        raise ShapeMismatchError(
            f"Cannot tell the channel axis of {tuple(output_shape)}; pass num_classes explicitly"
        )
    channels = min(dims)
    if channels < 5:
        raise ShapeMismatchError(f"Output has no class scores: {tuple(output_shape)}")
    return channels - 4


def decode(raw_output: np.ndarray, num_classes: int) -> Candidates:
    """
    Decode raw YOLO output into model-space boxes, best scores and class ids.

    Accepted layouts (batch axis optional):
    - (1, N, 4 + C): prediction rows [cx, cy, w, h, class_scores...]
    - (1, 4 + C, N): channels first, as most exports emit; transposed here

    Scores are used as-is (already post-activation). No threshold is applied.
    """

    if num_classes < 1:
        raise ShapeMismatchError(f"num_classes must be >= 1, got {num_classes}")
    p = _drop_batch(raw_output)
    channels = 4 + int(num_classes)

    # Prefer rows when both axes match (N == 4 + C).
    if p.shape[1] == channels:
        rows = p
    elif p.shape[0] == channels:
        rows = p.T
    else:
        raise ShapeMismatchError(
            f"Expected an axis of size {channels} (4 + {num_classes} classes), got shape {np.shape(raw_output)}"
        )

    if rows.shape[0] == 0:
        return Candidates.empty()

    rows = rows.astype(np.float32, copy=False)
    cx, cy, w_box, h_box = rows[:, 0], rows[:, 1], rows[:, 2], rows[:, 3]
    class_scores = rows[:, 4:]

    # argmax keeps the first maximum on ties.
    class_ids = np.argmax(class_scores, axis=1)
    scores = class_scores[np.arange(class_scores.shape[0]), class_ids]

    half_w = w_box / 2
    half_h = h_box / 2
    boxes = np.stack([cy - half_h, cx - half_w, cy + half_h, cx + half_w], axis=1)

    return Candidates(
        boxes=boxes.astype(np.float32, copy=False),
        scores=np.ascontiguousarray(scores, dtype=np.float32),
        class_ids=class_ids.astype(np.int64, copy=False),
    )
