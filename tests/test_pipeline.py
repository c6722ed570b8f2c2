import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
import requests

from fakes import AsyncFakeEngine, FakeEngine, RecordingCanvas, make_output, solid_frame

from yolo_stream.config import DetectorConfig, merge_config
from yolo_stream.errors import ModelLoadError, ShapeMismatchError
from yolo_stream.labels import COCO_LABELS, UNKNOWN_LABEL
from yolo_stream.runtime import (
    DetectionPipeline,
    LoadedModel,
    create_engine,
    fetch_model,
    find_project_root,
    load_model,
    prepare_model,
    prepare_model_async,
    resolve_model_path,
)

LABELS = ("person", "bicycle", "car")


def _scenario_output() -> np.ndarray:
    return make_output(
        [
            [320, 320, 640, 480, 0.1, 0.9, 0.0],  # whole frame, bicycle
            [322, 322, 640, 480, 0.1, 0.8, 0.0],  # near-duplicate, suppressed
            [100, 200, 40, 40, 0.3, 0.0, 0.0],  # kept by NMS, below display threshold
        ],
        num_classes=3,
    )


class TestPrepareModel(unittest.TestCase):
    def test_warm_up_infers_class_count(self) -> None:
        engine = FakeEngine(_scenario_output())
        model = prepare_model(engine, name="fake")
        self.assertEqual(model.num_classes, 3)
        self.assertEqual(model.input_shape, (1, 640, 640, 3))
        self.assertEqual((model.input_width, model.input_height), (640, 640))

        (warm_up,) = engine.inputs
        self.assertEqual(warm_up.shape, (1, 640, 640, 3))
        self.assertTrue(np.all(warm_up == 1.0))

    def test_explicit_class_count(self) -> None:
        model = prepare_model(FakeEngine(_scenario_output()), num_classes=2)
        self.assertEqual(model.num_classes, 2)

    def test_short_row_major_output_uses_label_count(self) -> None:
        raw = np.zeros((1, 50, 84), dtype=np.float32)
        raw[0, 0, :4] = [320, 320, 64, 64]
        raw[0, 0, 4 + 7] = 0.9
        model = prepare_model(FakeEngine(raw), labels=COCO_LABELS)
        self.assertEqual(model.num_classes, 80)

        result = DetectionPipeline(model, DetectorConfig()).detect(solid_frame(640, 640))
        self.assertEqual(result.labels, ["truck"])
        self.assertTrue(np.allclose(result.detections[0].as_yxyx(), (288, 288, 352, 352)))

    def test_rejects_non_nhwc_engines(self) -> None:
        with self.assertRaises(ModelLoadError):
            prepare_model(FakeEngine(_scenario_output(), input_shape=(1, 3, 640, 640)))


class TestDetectionPipeline(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = FakeEngine(_scenario_output())
        self.model = prepare_model(self.engine)
        self.config = DetectorConfig(labels=LABELS)
        self.pipeline = DetectionPipeline(self.model, self.config)

    def test_end_to_end(self) -> None:
        result = self.pipeline.detect(solid_frame(800, 600))
        self.assertEqual((result.width, result.height), (800, 600))
        self.assertEqual(result.labels, ["bicycle", "person"])
        self.assertTrue(np.allclose(result.scores, [0.9, 0.3]))

        full, small = result.detections
        self.assertTrue(np.allclose(full.as_yxyx(), (0, 0, 600, 800), atol=1e-3))
        self.assertTrue(np.allclose(small.as_yxyx(), (125, 100, 175, 150), atol=1e-3))

        tensor = self.engine.inputs[-1]
        self.assertEqual(tensor.shape, (1, 640, 640, 3))
        self.assertEqual(tensor.dtype, np.float32)

    def test_display_gate_only_affects_drawing(self) -> None:
        canvas = RecordingCanvas()
        result = self.pipeline.detect_and_render(solid_frame(800, 600), canvas)
        self.assertEqual(len(result), 2)
        self.assertEqual(canvas.calls[0], ("resize", 800, 600))
        (stroke,) = canvas.named("stroke_rect")
        self.assertTrue(np.allclose(stroke[1:5], (0, 0, 800, 600), atol=1e-3))
        self.assertEqual(canvas.named("fill_text")[0][1], "bicycle - 90.0%")

        shown = result.for_display(self.config)
        self.assertEqual(shown.labels, ["bicycle"])

    def test_nms_thresholds_come_from_config(self) -> None:
        pipeline = self.pipeline.with_config(merge_config(self.config, nms_score_threshold=0.5, iou_threshold=0.99))
        result = pipeline.detect(solid_frame(800, 600))
        self.assertEqual(result.labels, ["bicycle", "bicycle"])
        self.assertIs(pipeline.model, self.model)

    def test_missing_labels_become_unknown(self) -> None:
        pipeline = self.pipeline.with_config(merge_config(self.config, labels=("person",)))
        result = pipeline.detect(solid_frame(800, 600))
        self.assertEqual(result.labels, [UNKNOWN_LABEL, "person"])

    def test_accepts_arrays(self) -> None:
        result = self.pipeline.detect(np.zeros((600, 800, 3), dtype=np.uint8))
        self.assertEqual(len(result), 2)

    def test_unexpected_output_shape(self) -> None:
        model = LoadedModel(
            engine=FakeEngine(np.zeros((1, 9, 10), dtype=np.float32)),
            input_shape=(1, 640, 640, 3),
            num_classes=3,
        )
        with self.assertRaises(ShapeMismatchError):
            DetectionPipeline(model, self.config).detect(solid_frame(64, 64))

    def test_no_detections(self) -> None:
        model = prepare_model(FakeEngine(make_output([], num_classes=3)))
        canvas = RecordingCanvas()
        result = DetectionPipeline(model, self.config).detect_and_render(solid_frame(320, 240), canvas)
        self.assertEqual(len(result), 0)
        self.assertEqual(canvas.named("stroke_rect"), [])
        self.assertEqual(canvas.named("clear"), [("clear",)])


class TestAsyncEngines(unittest.IsolatedAsyncioTestCase):
    async def test_async_engine(self) -> None:
        engine = AsyncFakeEngine(_scenario_output())
        model = await prepare_model_async(engine)
        self.assertEqual(model.num_classes, 3)

        pipeline = DetectionPipeline(model, DetectorConfig(labels=LABELS))
        result = await pipeline.detect_async(solid_frame(800, 600))
        self.assertEqual(result.labels, ["bicycle", "person"])

        canvas = RecordingCanvas()
        await pipeline.detect_and_render_async(solid_frame(800, 600), canvas)
        self.assertEqual(len(canvas.named("stroke_rect")), 1)

    async def test_sync_entry_points_reject_async_engines(self) -> None:
        engine = AsyncFakeEngine(_scenario_output())
        with self.assertRaises(TypeError):
            prepare_model(engine)

        model = LoadedModel(engine=engine, input_shape=(1, 640, 640, 3), num_classes=3)
        with self.assertRaises(TypeError):
            DetectionPipeline(model, DetectorConfig()).detect(solid_frame(32, 32))

    async def test_sync_engine_through_async_path(self) -> None:
        model = prepare_model(FakeEngine(_scenario_output()))
        result = await DetectionPipeline(model, DetectorConfig(labels=LABELS)).detect_async(solid_frame(800, 600))
        self.assertEqual(len(result), 2)


class TestLoadModel(unittest.TestCase):
    def test_missing_model_url(self) -> None:
        with self.assertLogs("yolo_stream.runtime", "ERROR"):
            self.assertIsNone(load_model(DetectorConfig()))

    def test_unknown_extension(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "model.bin").write_bytes(b"")
            with self.assertLogs("yolo_stream.runtime", "ERROR"):
                self.assertIsNone(load_model(DetectorConfig(model_url="model.bin"), root=tmp))

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertLogs("yolo_stream.runtime", "ERROR"):
                self.assertIsNone(load_model(DetectorConfig(model_url="missing.onnx"), root=tmp))

    def test_loads_through_engine_factory(self) -> None:
        engine = FakeEngine(_scenario_output())
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("yolo_stream.runtime.create_engine", return_value=engine) as factory:
                with self.assertLogs("yolo_stream.runtime", "INFO"):
                    model = load_model(DetectorConfig(model_url="models/yolo.onnx"), root=tmp)

        self.assertIsNotNone(model)
        self.assertEqual(model.name, "yolo.onnx")
        self.assertEqual(model.num_classes, 3)
        self.assertEqual(factory.call_args[0][0], (Path(tmp) / "models" / "yolo.onnx").resolve())

    def test_backend_selection(self) -> None:
        with self.assertRaises(ModelLoadError):
            create_engine(Path("model.weights"))
        with self.assertRaises(ModelLoadError):
            create_engine(Path("model.onnx"), backend="tensorflow")


class TestFetchModel(unittest.TestCase):
    def test_downloads_once(self) -> None:
        response = mock.Mock()
        response.content = b"onnx-bytes"
        response.raise_for_status.return_value = None
        url = "https://example.com/models/yolov8n.onnx?download=1"

        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("yolo_stream.runtime.requests.get", return_value=response) as get:
                first = fetch_model(url, cache_dir=tmp)
                second = fetch_model(url, cache_dir=tmp)
                self.assertEqual(first, second)
                self.assertEqual(first.name, "yolov8n.onnx")
                self.assertEqual(first.read_bytes(), b"onnx-bytes")
            self.assertEqual(get.call_count, 1)

    def test_request_errors(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("yolo_stream.runtime.requests.get", side_effect=requests.ConnectionError("boom")):
                with self.assertRaises(ModelLoadError):
                    fetch_model("https://example.com/yolo.onnx", cache_dir=tmp)

    def test_load_model_logs_download_failures(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("yolo_stream.runtime.requests.get", side_effect=requests.Timeout("slow")):
                with self.assertLogs("yolo_stream.runtime", "ERROR"):
                    model = load_model(DetectorConfig(model_url="https://example.com/yolo.onnx"), cache_dir=tmp)
        self.assertIsNone(model)


class TestModelPaths(unittest.TestCase):
    def test_project_root_is_found_from_a_subdirectory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "pyproject.toml").write_text("", encoding="utf-8")
            nested = root / "models" / "v8"
            nested.mkdir(parents=True)
            weights = nested / "yolo.onnx"
            weights.write_bytes(b"")

            self.assertEqual(find_project_root(nested), root)
            self.assertEqual(find_project_root(weights), root)

    def test_without_markers_the_start_is_returned(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            start = Path(tmp).resolve()
            self.assertEqual(find_project_root(start, markers=("no-such-marker",)), start)

    def test_resolve_model_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            self.assertEqual(resolve_model_path("models/yolo.onnx", root=tmp), root / "models" / "yolo.onnx")
            self.assertEqual(resolve_model_path(root / "a.onnx", root=None), root / "a.onnx")


if __name__ == "__main__":
    unittest.main()
