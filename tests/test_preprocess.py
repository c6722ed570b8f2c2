import unittest

import numpy as np

from yolo_stream.frames import Frame
from yolo_stream.letterbox import compute_letterbox
from yolo_stream.preprocess import preprocess


class TestPreprocess(unittest.TestCase):
    def test_shape_normalization_and_padding(self) -> None:
        frame = Frame.from_rgb(np.full((600, 800, 3), 255, dtype=np.uint8))
        t = compute_letterbox(frame.width, frame.height, 640, 640)
        x = preprocess(frame, t)

        self.assertEqual(x.shape, (1, 640, 640, 3))
        self.assertEqual(x.dtype, np.float32)
        self.assertTrue(np.all(x[0, :80] == 0.0))
        self.assertTrue(np.allclose(x[0, 80:560], 1.0))
        self.assertTrue(np.all(x[0, 560:] == 0.0))

    def test_pad_value(self) -> None:
        frame = Frame.from_rgb(np.zeros((10, 20, 3), dtype=np.uint8))
        t = compute_letterbox(frame.width, frame.height, 20, 20)
        x = preprocess(frame, t, pad_value=0.5)
        self.assertEqual((t.pad_y, t.pad_bottom), (5, 5))
        self.assertTrue(np.allclose(x[0, :5], 0.5))
        self.assertTrue(np.allclose(x[0, 5:15], 0.0))
        self.assertTrue(np.allclose(x[0, 15:], 0.5))

    def test_same_size_is_plain_normalization(self) -> None:
        rng = np.random.default_rng(0)
        pixels = rng.integers(0, 256, size=(32, 32, 3), dtype=np.uint8)
        t = compute_letterbox(32, 32, 32, 32)
        x = preprocess(pixels, t)
        self.assertTrue(np.allclose(x[0], pixels.astype(np.float32) / 255.0))

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(1)
        frame = Frame.from_rgb(rng.integers(0, 256, size=(97, 131, 3), dtype=np.uint8))
        t = compute_letterbox(frame.width, frame.height, 64, 64)
        self.assertTrue(np.array_equal(preprocess(frame, t), preprocess(frame, t)))

    def test_rejects_frame_that_does_not_match_transform(self) -> None:
        frame = Frame.from_rgb(np.zeros((10, 10, 3), dtype=np.uint8))
        t = compute_letterbox(20, 10, 64, 64)
        with self.assertRaises(ValueError):
            preprocess(frame, t)


class TestFrame(unittest.TestCase):
    def test_from_bgr_flips_channels(self) -> None:
        bgr = np.zeros((2, 3, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blue
        frame = Frame.from_bgr(bgr)
        self.assertEqual((frame.width, frame.height), (3, 2))
        self.assertTrue(np.all(frame.pixels[..., 2] == 255))
        self.assertTrue(np.array_equal(frame.to_bgr(), bgr))

    def test_rejects_bad_shapes(self) -> None:
        with self.assertRaises(ValueError):
            Frame.from_rgb(np.zeros((4, 4), dtype=np.uint8))
        with self.assertRaises(ValueError):
            Frame(width=5, height=4, pixels=np.zeros((4, 4, 3), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
