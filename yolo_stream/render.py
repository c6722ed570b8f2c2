from __future__ import annotations

from typing import Iterable, Tuple

from .canvas import Canvas
from .config import DetectorConfig, is_displayed
from .labels import color_for
from .types import Detection

TAG_HEIGHT = 16
TAG_PADDING = 2
TEXT_COLOR = "#FFFFFF"

__all__ = ["render", "format_tag", "tag_position", "is_displayed", "TAG_HEIGHT"]


def format_tag(detection: Detection) -> str:
    return f"{detection.label} - {detection.score * 100:.1f}%"


def tag_position(
    x1: float,
    y1: float,
    tag_width: float,
    surface_width: int,
    surface_height: int,
    tag_height: float = TAG_HEIGHT,
) -> Tuple[float, float]:
    """
    Top-left corner of a label tag anchored above (x1, y1), kept on-surface.

    Above the box when there is room, otherwise just inside its top edge.
    """

    y = y1 - tag_height
    if y < 0:
        y = y1
    y = max(0.0, min(y, surface_height - tag_height))
    x = max(0.0, min(x1, surface_width - tag_width))
    return float(x), float(y)


def render(surface: Canvas, detections: Iterable[Detection], config: DetectorConfig) -> int:
    """
    Clear `surface` and draw every detection passing the display gate.

    Detections are drawn in the given order. Returns how many were drawn.
    """

    surface.clear()
    drawn = 0
    for det in detections:
        if not is_displayed(det, config):
            continue

        color = color_for(det.class_id, config.colors)
        surface.stroke_rect(det.x1, det.y1, det.width, det.height, color, config.box_line_width)

        text = format_tag(det)
        tag_width = surface.measure_text(text) + 2 * TAG_PADDING
        x, y = tag_position(det.x1, det.y1, tag_width, surface.width, surface.height)
        surface.fill_rect(x, y, tag_width, TAG_HEIGHT, color)
        surface.fill_text(text, x + TAG_PADDING, y, TEXT_COLOR)
        drawn += 1
    return drawn
