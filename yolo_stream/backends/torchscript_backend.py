from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np

from ..errors import ModelLoadError

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: feed float16 (for models exported with --half)
    - output_index: if the model returns multiple outputs, select this index
    - input_size: (width, height); TorchScript modules do not declare input shapes
    - channels_first: feed (1, 3, H, W) instead of the pipeline's (1, H, W, 3)
    """

    device: str = "cpu"
    half: bool = False
    output_index: int = 0
    input_size: Tuple[int, int] = (640, 640)
    channels_first: bool = True


class TorchScriptBackend:
    """
    TorchScript engine using `torch.jit.load`.

    Works with exported `.torchscript` files without needing the model class code.
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise ModelLoadError(f"Model not found: {self.model_path}")

        self.device = torch.device(cfg.device)
        self.dtype = torch.float16 if cfg.half else torch.float32
        self.output_index = cfg.output_index
        self.channels_first = cfg.channels_first
        width, height = cfg.input_size
        self._input_shape = (1, int(height), int(width), 3)

        try:
            model = torch.jit.load(str(self.model_path), map_location=self.device)
        except Exception as exc:
            raise ModelLoadError(f"torch.jit.load failed for {self.model_path}: {exc}") from exc
        model.eval()
        self.model = model

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        return self._input_shape

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        torch = self._torch
        x = torch.from_numpy(np.ascontiguousarray(tensor)).to(self.device)
        if self.channels_first:
            x = x.permute(0, 3, 1, 2)
        x = x.to(self.dtype).contiguous()

        with torch.inference_mode():
            out = self.model(x)

        # Exports with auxiliary heads return a tuple; the detections come first.
        if isinstance(out, (tuple, list)):
            out = out[self.output_index]
        return out.detach().float().cpu().numpy()
