from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from .errors import ConfigurationError
from .labels import COCO_LABELS, DEFAULT_COLORS, UNKNOWN_LABEL


@dataclass(frozen=True)
class DetectorConfig:
    """
    Immutable detector configuration.

    Updates never mutate an instance: `merge_config` returns a new one, so a
    running loop keeps the snapshot it started the tick with.
    """

    model_url: str = ""
    labels: Tuple[str, ...] = COCO_LABELS
    colors: Tuple[str, ...] = DEFAULT_COLORS
    # None shows every label.
    display_labels: Optional[FrozenSet[str]] = None
    score_threshold: float = 0.5
    box_line_width: float = 2.0
    # Suppression runs before the display gate and uses its own, lower threshold.
    max_outputs: int = 500
    iou_threshold: float = 0.45
    nms_score_threshold: float = 0.2

    def __post_init__(self) -> None:
        if not isinstance(self.model_url, str):
            raise ConfigurationError("model_url must be a string")
        object.__setattr__(self, "labels", _as_str_tuple(self.labels, "labels"))
        object.__setattr__(self, "colors", _as_str_tuple(self.colors, "colors"))
        named = [label for label in self.labels if label != UNKNOWN_LABEL]
        # "unknown" may repeat: it fills the gaps of sparse label files.
        if len(set(named)) != len(named):
            raise ConfigurationError("labels must be unique")
        if self.display_labels is not None:
            object.__setattr__(
                self, "display_labels", frozenset(_as_str_tuple(self.display_labels, "display_labels"))
            )
        if not (0.0 <= self.score_threshold <= 1.0):
            raise ConfigurationError("score_threshold must be within [0, 1]")
        if self.box_line_width <= 0:
            raise ConfigurationError("box_line_width must be > 0")
        if self.max_outputs < 1:
            raise ConfigurationError("max_outputs must be >= 1")
        if not (0.0 <= self.iou_threshold <= 1.0):
            raise ConfigurationError("iou_threshold must be within [0, 1]")
        if not (0.0 <= self.nms_score_threshold <= 1.0):
            raise ConfigurationError("nms_score_threshold must be within [0, 1]")


def _as_str_tuple(value: Any, key: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        raise ConfigurationError(f"{key} must be a sequence of strings, not a single string")
    try:
        items = tuple(value)
    except TypeError as exc:
        raise ConfigurationError(f"{key} must be a sequence of strings") from exc
    if not all(isinstance(item, str) for item in items):
        raise ConfigurationError(f"{key} must only contain strings")
    return items


def is_displayed(detection: Any, config: DetectorConfig) -> bool:
    """
    Display gate shared by the renderer and the filtered payload.
    """

    if detection.score < config.score_threshold:
        return False
    if config.display_labels is not None and detection.label not in config.display_labels:
        return False
    return True


CONFIG_KEYS = frozenset(f.name for f in fields(DetectorConfig))


def merge_config(config: DetectorConfig, **options: Any) -> DetectorConfig:
    """
    Merge a partial update onto `config` and return the new configuration.

    Options set to None keep their previous value. `display_labels` may be
    any iterable of strings; use `dataclasses.replace(config,
    display_labels=None)` to remove an existing filter.
    """

    unknown = sorted(set(options) - CONFIG_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {unknown}")

    updates: Dict[str, Any] = {k: v for k, v in options.items() if v is not None}
    if "display_labels" in updates:
        updates["display_labels"] = frozenset(_as_str_tuple(updates["display_labels"], "display_labels"))
    if not updates:
        return config
    return replace(config, **updates)


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer")
    return int(value)


def _require_str_list(payload: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = payload[key]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"{key} must be a list of strings")
    return tuple(value)


def config_from_dict(payload: Dict[str, Any], base: Optional[DetectorConfig] = None) -> DetectorConfig:
    if not isinstance(payload, dict):
        raise ConfigurationError("Config must be a JSON object")
    unknown = sorted(set(payload) - CONFIG_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {unknown}")

    options: Dict[str, Any] = {}
    for key in payload:
        if payload[key] is None:
            continue
        if key == "model_url":
            if not isinstance(payload[key], str):
                raise ConfigurationError("model_url must be a string")
            options[key] = payload[key]
        elif key in ("labels", "colors", "display_labels"):
            options[key] = _require_str_list(payload, key)
        elif key == "max_outputs":
            options[key] = _require_int(payload, key)
        else:
            options[key] = _require_number(payload, key)

    return merge_config(base if base is not None else DetectorConfig(), **options)


def load_config(path: Union[str, Path], base: Optional[DetectorConfig] = None) -> DetectorConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    raw = p.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid config JSON: {p}") from exc
    return config_from_dict(payload, base=base)


def iter_config_items(config: DetectorConfig) -> Iterable[Tuple[str, Any]]:
    for f in fields(config):
        value = getattr(config, f.name)
        if isinstance(value, frozenset):
            value = sorted(value)
        elif isinstance(value, tuple):
            value = list(value)
        yield f.name, value
