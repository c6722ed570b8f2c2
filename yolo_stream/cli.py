from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from typing import List, Optional, Sequence

import cv2
from tqdm import tqdm

from .canvas import OpenCVCanvas
from .config import DetectorConfig, iter_config_items, load_config, merge_config
from .frames import Frame, OpenCVFrameProvider, load_image
from .labels import load_labels
from .loop import FrameLoop
from .runtime import DetectionPipeline, load_model
from .types import FrameResult

LOGGER = logging.getLogger(__name__)

WINDOW_NAME = "yolo_stream"


def setup_logging(log_level: str = "INFO", log_path: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yolo-stream",
        description="Run YOLO detection on an image or a live/video source and draw labelled boxes.",
    )
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    src.add_argument("--rtsp", default=None, help="RTSP/HTTP stream URL.")

    # Detector options default to None so only flags given on the command line
    # override the --config file.
    parser.add_argument("--config", default=None, help="JSON file with detector options.")
    parser.add_argument("--model", dest="model_url", default=None, help="Model path or http(s) URL (.onnx/.torchscript).")
    parser.add_argument("--labels-file", default=None, help="metadata.yaml (names mapping) or one label per line.")
    parser.add_argument("--display-labels", nargs="+", default=None, help="Only draw these labels.")
    parser.add_argument("--score-threshold", type=float, default=None, help="Display threshold (default 0.5).")
    parser.add_argument("--box-line-width", type=float, default=None, help="Box stroke width (default 2).")
    parser.add_argument("--iou", dest="iou_threshold", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--nms-score-threshold", type=float, default=None, help="NMS pre-filter threshold.")
    parser.add_argument("--max-outputs", type=int, default=None, help="Maximum detections kept by NMS.")

    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--imgsz", type=int, default=None, help="Model input size when the model does not declare one.")

    parser.add_argument("--fps", type=float, default=0.0, help="Target loop rate for streams (0 = as fast as possible).")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N processed frames (0 = no limit).")
    parser.add_argument("--loop-video", action="store_true", help="Rewind --video at end of file instead of stopping.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("--json", action="store_true", help="Print detection payloads as JSON lines.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar for streams.")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ERROR.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    return parser


def resolve_config(args: argparse.Namespace) -> DetectorConfig:
    config = load_config(args.config) if args.config else DetectorConfig()
    return merge_config(
        config,
        model_url=args.model_url,
        labels=load_labels(args.labels_file) if args.labels_file else None,
        display_labels=args.display_labels,
        score_threshold=args.score_threshold,
        box_line_width=args.box_line_width,
        iou_threshold=args.iou_threshold,
        nms_score_threshold=args.nms_score_threshold,
        max_outputs=args.max_outputs,
    )


def _parse_ort_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def _print_result(result: FrameResult, config: DetectorConfig, *, as_json: bool, frame_idx: Optional[int] = None) -> None:
    shown = result.for_display(config)
    if as_json:
        payload = shown.to_payload()
        if frame_idx is not None:
            payload = {"frame": frame_idx, **payload}
        print(json.dumps(payload))
        return
    for det in shown:
        print(det.label, f"{det.score:.3f}", tuple(round(v, 1) for v in det.as_yxyx()))


class _OverlayProvider:
    """
    Passes frames through and makes each one the canvas background, so boxes
    are drawn over the video instead of on a blank surface.
    """

    def __init__(self, provider: OpenCVFrameProvider, canvas: OpenCVCanvas) -> None:
        self.provider = provider
        self.canvas = canvas

    def read(self) -> Optional[Frame]:
        frame = self.provider.read()
        if frame is not None:
            self.canvas.set_background(frame.to_bgr())
        return frame


def run_image(args: argparse.Namespace, pipeline: DetectionPipeline) -> int:
    frame = load_image(args.image)
    canvas = OpenCVCanvas()
    canvas.set_background(frame.to_bgr())
    result = pipeline.detect_and_render(frame, canvas)

    if args.out:
        ok = cv2.imwrite(args.out, canvas.image)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")

    if args.show:
        cv2.imshow(WINDOW_NAME, canvas.image)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    _print_result(result, pipeline.config, as_json=args.json)
    return 0


def run_stream(args: argparse.Namespace, pipeline: DetectionPipeline) -> int:
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")
    if args.fps < 0:
        raise ValueError("--fps must be >= 0")

    frame_loop: Optional[FrameLoop] = None

    def _stop() -> None:
        if frame_loop is not None:
            frame_loop.stop()

    provider = OpenCVFrameProvider(
        video=args.video,
        webcam=args.webcam,
        rtsp=args.rtsp,
        loop_video=bool(args.loop_video),
        on_exhausted=_stop,
    )
    canvas = OpenCVCanvas()
    writer: Optional[cv2.VideoWriter] = None
    pbar = None
    if not args.no_progress:
        total = provider.info.frame_count if args.video and not args.loop_video else None
        if args.max_frames:
            total = min(total, args.max_frames) if total else args.max_frames
        pbar = tqdm(total=total, unit="frame", desc="detect")

    processed = 0

    def _sink(result: FrameResult) -> None:
        nonlocal writer, processed
        processed += 1
        if pbar is not None:
            pbar.update(1)
        if args.json:
            _print_result(result, frame_loop.config, as_json=True, frame_idx=processed)

        if args.out and writer is None:
            fps = provider.info.fps or (args.fps if args.fps > 0 else 30.0)
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            writer = cv2.VideoWriter(args.out, fourcc, fps, (canvas.width, canvas.height))
            if not writer.isOpened():
                LOGGER.error("Failed to open video writer: %s", args.out)
                writer = None
                args.out = None
        if writer is not None:
            writer.write(canvas.image)

        if args.show:
            cv2.imshow(WINDOW_NAME, canvas.image)
            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord("q")):
                _stop()

        if args.max_frames and processed >= args.max_frames:
            _stop()

    frame_loop = FrameLoop(
        pipeline,
        _OverlayProvider(provider, canvas),
        canvas,
        sink=_sink,
        tick_interval=(1.0 / args.fps) if args.fps > 0 else 0.0,
    )

    try:
        stats = asyncio.run(frame_loop.run())
    except KeyboardInterrupt:
        stats = frame_loop.stats
        print("Interrupted.")
    finally:
        provider.close()
        if writer is not None:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()
        if pbar is not None:
            pbar.close()

    print(
        f"Frames processed: {stats.frames_processed} "
        f"(unavailable ticks: {stats.frames_unavailable}, failed: {stats.frames_failed})"
    )
    if args.out and writer is not None:
        print(f"Wrote annotated video: {args.out}")
    return 0 if stats.frames_failed == 0 else 2


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    config = resolve_config(args)
    if not config.model_url:
        parser.error("a model is required: pass --model or set model_url in --config")
    for key, value in iter_config_items(config):
        if key != "labels":
            LOGGER.debug("config %s=%r", key, value)

    if args.imgsz is not None and args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")
    model = load_model(
        config,
        backend=args.backend,
        input_size=(args.imgsz, args.imgsz) if args.imgsz else None,
        onnx_providers=_parse_ort_providers(args.onnx_providers),
    )
    if model is None:
        print(f"Could not load model: {config.model_url}")
        return 1

    pipeline = DetectionPipeline(model, config)
    if args.image is not None:
        return run_image(args, pipeline)
    return run_stream(args, pipeline)
