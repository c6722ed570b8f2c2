"""
YOLO detection post-processing and live-video frame loop.

Framework-agnostic: the pipeline works on NumPy arrays and talks to the model
through a small engine protocol (ONNX Runtime and TorchScript engines ship in
`yolo_stream.backends`). OpenCV is used for resizing, drawing and capture.
"""

from .config import DetectorConfig, is_displayed, load_config, merge_config
from .decode import decode
from .errors import ConfigurationError, DetectorError, ModelLoadError, ShapeMismatchError
from .frames import Frame, OpenCVFrameProvider, load_image
from .labels import COCO_LABELS, DEFAULT_COLORS, UNKNOWN_LABEL, label_for, load_labels
from .letterbox import LetterboxTransform, compute_letterbox, invert
from .loop import FrameLoop, LoopState, LoopStats
from .nms import NMSConfig, iou, nms, suppress
from .preprocess import preprocess
from .remap import remap
from .render import render
from .canvas import Canvas, OpenCVCanvas
from .runtime import DetectionPipeline, LoadedModel, load_model, prepare_model, prepare_model_async
from .types import Candidates, Detection, FrameResult, RawCandidate

__all__ = [
    "DetectorConfig",
    "is_displayed",
    "load_config",
    "merge_config",
    "decode",
    "ConfigurationError",
    "DetectorError",
    "ModelLoadError",
    "ShapeMismatchError",
    "Frame",
    "OpenCVFrameProvider",
    "load_image",
    "COCO_LABELS",
    "DEFAULT_COLORS",
    "UNKNOWN_LABEL",
    "label_for",
    "load_labels",
    "LetterboxTransform",
    "compute_letterbox",
    "invert",
    "FrameLoop",
    "LoopState",
    "LoopStats",
    "NMSConfig",
    "iou",
    "nms",
    "suppress",
    "preprocess",
    "remap",
    "render",
    "Canvas",
    "OpenCVCanvas",
    "DetectionPipeline",
    "LoadedModel",
    "load_model",
    "prepare_model",
    "prepare_model_async",
    "Candidates",
    "Detection",
    "FrameResult",
    "RawCandidate",
]
