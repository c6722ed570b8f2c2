from __future__ import annotations

import hashlib
import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Optional, Protocol, Sequence, Tuple, Union

import numpy as np
import requests

from .canvas import Canvas
from .config import DetectorConfig
from .decode import decode, infer_num_classes
from .errors import ModelLoadError
from .frames import Frame
from .letterbox import LetterboxTransform, compute_letterbox
from .nms import NMSConfig, nms
from .preprocess import preprocess
from .remap import remap
from .render import render
from .types import FrameResult

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "yolo_stream"


class InferenceEngine(Protocol):
    """
    Black-box model runner.

    `input_shape` is the NHWC shape (1, H, W, 3) the engine expects. `infer`
    returns the raw prediction tensor, or an awaitable resolving to it.
    """

    @property
    def input_shape(self) -> Sequence[int]:
        ...

    def infer(self, tensor: np.ndarray) -> Union[np.ndarray, Awaitable[np.ndarray]]:
        ...


PROJECT_MARKERS = ("pyproject.toml", "setup.py", ".git")


def find_project_root(start: Optional[PathLike] = None, markers: Sequence[str] = PROJECT_MARKERS) -> Path:
    """
    Nearest directory at or above `start` (default: cwd) holding one of `markers`.

    Falls back to `start` itself when nothing is found.
    """

    here = Path(start if start is not None else Path.cwd()).resolve()
    if here.is_file():
        here = here.parent
    for candidate in (here, *here.parents):
        if any((candidate / marker).exists() for marker in markers):
            return candidate
    return here


def resolve_model_path(model_url: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Local model path for a non-HTTP `model_url`.

    Relative paths are taken from `root`, or from the project root when `root`
    is "auto" or None, so "models/yolov8n.onnx" works from any subdirectory.
    """

    path = Path(model_url)
    if path.is_absolute():
        return path
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / path).resolve()


def fetch_model(url: str, cache_dir: PathLike = DEFAULT_CACHE_DIR, timeout: float = 60.0) -> Path:
    """
    Download a model over HTTP(S) into `cache_dir` and return the local path.

    Files are cached per URL; a cached copy is reused without a request.
    """

    name = Path(url.split("?", 1)[0]).name or "model"
    key = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    target = Path(cache_dir) / key / name
    if target.exists():
        return target

    LOGGER.info("Downloading model from %s", url)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ModelLoadError(f"Could not download model from {url}: {exc}") from exc

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(response.content)
    return target


@dataclass(frozen=True)
class LoadedModel:
    engine: InferenceEngine
    input_shape: Tuple[int, int, int, int]
    num_classes: int
    name: str = ""

    @property
    def input_width(self) -> int:
        return int(self.input_shape[2])

    @property
    def input_height(self) -> int:
        return int(self.input_shape[1])


def _engine_input_shape(engine: InferenceEngine) -> Tuple[int, int, int, int]:
    shape = tuple(int(d) for d in engine.input_shape)
    if len(shape) != 4 or shape[0] != 1 or shape[3] != 3 or shape[1] <= 0 or shape[2] <= 0:
        raise ModelLoadError(f"Expected engine input shape (1, H, W, 3), got {tuple(engine.input_shape)}")
    return shape  # type: ignore[return-value]


def prepare_model(
    engine: InferenceEngine,
    *,
    num_classes: Optional[int] = None,
    labels: Optional[Sequence[str]] = None,
    name: str = "",
) -> LoadedModel:
    """
    Query the engine's input shape and run one warm-up pass on a tensor of ones.

    The warm-up output also tells us how many classes the model predicts, unless
    `num_classes` is given explicitly. An output axis matching `labels` (4 box
    values + one score per label) wins over the shape heuristic.
    """

    shape = _engine_input_shape(engine)
    output = engine.infer(np.ones(shape, dtype=np.float32))
    if inspect.isawaitable(output):
        if inspect.iscoroutine(output):
            output.close()
        raise TypeError("Engine is asynchronous; use prepare_model_async().")
    return _loaded(engine, shape, output, num_classes, labels, name)


async def prepare_model_async(
    engine: InferenceEngine,
    *,
    num_classes: Optional[int] = None,
    labels: Optional[Sequence[str]] = None,
    name: str = "",
) -> LoadedModel:
    shape = _engine_input_shape(engine)
    output = engine.infer(np.ones(shape, dtype=np.float32))
    if inspect.isawaitable(output):
        output = await output
    return _loaded(engine, shape, output, num_classes, labels, name)


def _loaded(
    engine: InferenceEngine,
    shape: Tuple[int, int, int, int],
    output: Any,
    num_classes: Optional[int],
    labels: Optional[Sequence[str]],
    name: str,
) -> LoadedModel:
    if num_classes is None:
        num_labels = len(labels) if labels is not None else None
        num_classes = infer_num_classes(np.shape(output), num_labels=num_labels)
    return LoadedModel(engine=engine, input_shape=shape, num_classes=int(num_classes), name=name)


def create_engine(
    model_path: Path,
    *,
    backend: Optional[str] = None,
    input_size: Optional[Tuple[int, int]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
) -> InferenceEngine:
    chosen = backend
    if chosen is None:
        suffix = model_path.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ModelLoadError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        ort_cfg = OnnxRuntimeBackendConfig(providers=onnx_providers)
        if input_size is not None:
            ort_cfg = OnnxRuntimeBackendConfig(providers=onnx_providers, input_size=input_size)
        return OnnxRuntimeBackend(model_path, ort_cfg)

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        ts_cfg = TorchScriptBackendConfig(device=torch_device, half=torch_half)
        if input_size is not None:
            ts_cfg = TorchScriptBackendConfig(device=torch_device, half=torch_half, input_size=input_size)
        return TorchScriptBackend(model_path, ts_cfg)

    raise ModelLoadError(f"Unsupported backend: {backend!r}")


def load_model(
    config: DetectorConfig,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    input_size: Optional[Tuple[int, int]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    cache_dir: PathLike = DEFAULT_CACHE_DIR,
) -> Optional[LoadedModel]:
    """
    Load and warm up the model named by `config.model_url`.

    `model_url` may be an http(s) URL (downloaded and cached) or a path;
    relative paths resolve against the project root by default. Returns None
    when the model cannot be loaded, so callers can fix the config and retry.
    """

    url = config.model_url
    if not url:
        LOGGER.error("Error loading model: model_url is not set")
        return None

    try:
        if url.startswith(("http://", "https://")):
            model_path = fetch_model(url, cache_dir=cache_dir)
        else:
            model_path = resolve_model_path(url, root=root)
        engine = create_engine(
            model_path,
            backend=backend,
            input_size=input_size,
            onnx_providers=onnx_providers,
            torch_device=torch_device,
            torch_half=torch_half,
        )
        model = prepare_model(engine, labels=config.labels, name=model_path.name)
    except Exception:
        LOGGER.exception("Error loading model: %s", url)
        return None

    LOGGER.info(
        "Loaded %s: input %dx%d, %d classes",
        model.name,
        model.input_width,
        model.input_height,
        model.num_classes,
    )
    return model


def _as_frame(frame: Union[Frame, np.ndarray]) -> Frame:
    if isinstance(frame, Frame):
        return frame
    return Frame.from_rgb(np.asarray(frame))


class DetectionPipeline:
    """
    Letterbox -> inference -> decode -> NMS -> remap, for one frame at a time.

    The pipeline holds no per-frame state; the same instance can serve any
    number of frames. Frames are RGB (`Frame` or an (H, W, 3) array).
    """

    def __init__(self, model: LoadedModel, config: DetectorConfig, *, pad_value: float = 0.0):
        self.model = model
        self.config = config
        self.pad_value = pad_value

    def with_config(self, config: DetectorConfig) -> "DetectionPipeline":
        return DetectionPipeline(self.model, config, pad_value=self.pad_value)

    @property
    def nms_config(self) -> NMSConfig:
        return NMSConfig(
            max_outputs=self.config.max_outputs,
            iou_threshold=self.config.iou_threshold,
            score_threshold=self.config.nms_score_threshold,
        )

    def prepare(self, frame: Frame) -> Tuple[np.ndarray, LetterboxTransform]:
        transform = compute_letterbox(frame.width, frame.height, self.model.input_width, self.model.input_height)
        return preprocess(frame, transform, pad_value=self.pad_value), transform

    def postprocess(self, raw: Any, transform: LetterboxTransform) -> FrameResult:
        candidates = decode(np.asarray(raw), self.model.num_classes)
        keep = nms(candidates.boxes, candidates.scores, self.nms_config)
        return remap(candidates, keep, transform, self.config.labels)

    def detect(self, frame: Union[Frame, np.ndarray]) -> FrameResult:
        frame = _as_frame(frame)
        tensor, transform = self.prepare(frame)
        raw = self.model.engine.infer(tensor)
        if inspect.isawaitable(raw):
            if inspect.iscoroutine(raw):
                raw.close()
            raise TypeError("Engine is asynchronous; use detect_async().")
        return self.postprocess(raw, transform)

    async def detect_async(self, frame: Union[Frame, np.ndarray]) -> FrameResult:
        frame = _as_frame(frame)
        tensor, transform = self.prepare(frame)
        raw = self.model.engine.infer(tensor)
        if inspect.isawaitable(raw):
            raw = await raw
        return self.postprocess(raw, transform)

    def draw(self, frame: Frame, surface: Canvas, result: FrameResult) -> int:
        surface.resize(frame.width, frame.height)
        return render(surface, result.detections, self.config)

    def detect_and_render(self, frame: Union[Frame, np.ndarray], surface: Canvas) -> FrameResult:
        frame = _as_frame(frame)
        result = self.detect(frame)
        self.draw(frame, surface, result)
        return result

    async def detect_and_render_async(self, frame: Union[Frame, np.ndarray], surface: Canvas) -> FrameResult:
        frame = _as_frame(frame)
        result = await self.detect_async(frame)
        self.draw(frame, surface, result)
        return result
