from __future__ import annotations

from pathlib import Path
from typing import Dict, Sequence, Tuple, Union

UNKNOWN_LABEL = "unknown"

COCO_LABELS: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat", "traffic light",
    "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat", "dog", "horse", "sheep", "cow",
    "elephant", "bear", "zebra", "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove", "skateboard",
    "surfboard", "tennis racket", "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana",
    "apple", "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse", "remote", "keyboard",
    "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator", "book", "clock", "vase",
    "scissors", "teddy bear", "hair drier", "toothbrush",
)

DEFAULT_COLORS: Tuple[str, ...] = (
    "#FF6B6B", "#FFA372", "#FFDC64", "#A3E635", "#66D3FA", "#82AAFF", "#C084FC", "#F472B6", "#FF9F43", "#FFB74D",
    "#AED581", "#4DD0E1", "#4FC3F7", "#9575CD", "#F06292", "#BA68C8", "#FF8A65", "#FFD54F", "#81C784", "#64B5F6",
)

FALLBACK_COLOR = "#FFFFFF"


def label_for(class_id: int, labels: Sequence[str]) -> str:
    """
    Label for a class id, or "unknown" when the id does not index `labels`.
    """

    if 0 <= class_id < len(labels):
        return labels[class_id]
    return UNKNOWN_LABEL


def color_for(class_id: int, colors: Sequence[str]) -> str:
    if not colors:
        return FALLBACK_COLOR
    return colors[class_id % len(colors)]


def _parse_names_mapping(lines: Sequence[str]) -> Dict[int, str]:
    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue

        # "id: label"
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        right = right.strip().strip("'").strip('"')
        if not left.isdigit():
            continue
        names[int(left)] = right
    return names


def load_labels(path: Union[str, Path]) -> Tuple[str, ...]:
    """
    Load an ordered label set from disk.

    Two formats are understood:

        names:            # YOLO-style metadata.yaml
          0: person
          1: bicycle

    or a plain text file with one label per line (line number = class id).
    Gaps in a `names:` mapping are filled with "unknown" so ids stay aligned.
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Labels file not found: {p}")
    lines = p.read_text(encoding="utf-8").splitlines()

    if any(line.strip() == "names:" for line in lines):
        names = _parse_names_mapping(lines)
        if not names:
            return ()
        return tuple(names.get(i, UNKNOWN_LABEL) for i in range(max(names) + 1))

    return tuple(line.strip() for line in lines if line.strip() and not line.strip().startswith("#"))
