from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ModelLoadError

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - input_size: (width, height) used when the model declares dynamic spatial dims
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    input_size: Tuple[int, int] = (640, 640)


def _static_dim(value: Any) -> Optional[int]:
    if isinstance(value, int) and value > 0:
        return value
    return None


class OnnxRuntimeBackend:
    """
    ONNX Runtime engine.

    Accepts an NHWC float32 tensor (1, H, W, 3). Models exported channels-first
    (1, 3, H, W), which is what most YOLO exports are, get a transposed copy.
    Returns the primary output as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise ModelLoadError(f"Model not found: {self.model_path}")

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        try:
            self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)
        except Exception as exc:
            raise ModelLoadError(f"ONNX Runtime rejected {self.model_path}: {exc}") from exc

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name

        shape = list(model_input.shape)
        if len(shape) != 4:
            raise ModelLoadError(f"Expected a 4D image input, got {shape}")
        self.channels_first = shape[1] == 3 and shape[3] != 3
        if self.channels_first:
            h, w = _static_dim(shape[2]), _static_dim(shape[3])
        else:
            h, w = _static_dim(shape[1]), _static_dim(shape[2])
        fallback_w, fallback_h = cfg.input_size
        self._input_shape = (1, h or int(fallback_h), w or int(fallback_w), 3)

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        return self._input_shape

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def infer(self, tensor: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> np.ndarray:
        blob = np.ascontiguousarray(np.transpose(tensor, (0, 3, 1, 2))) if self.channels_first else tensor
        inputs: Dict[str, Any] = {self.input_name: blob.astype(np.float32, copy=False)}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run([self.output_name], inputs)
        return outputs[0]
