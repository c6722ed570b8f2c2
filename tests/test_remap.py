import unittest

import numpy as np

from yolo_stream.labels import UNKNOWN_LABEL
from yolo_stream.letterbox import compute_letterbox
from yolo_stream.remap import remap
from yolo_stream.types import Candidates


def _candidates() -> Candidates:
    return Candidates(
        boxes=np.array(
            [
                [80, 0, 560, 640],  # whole image
                [120, 40, 200, 120],
                [0, 0, 40, 40],  # entirely in the top padding
            ],
            dtype=np.float32,
        ),
        scores=np.array([0.9, 0.6, 0.3], dtype=np.float32),
        class_ids=np.array([1, 0, 7], dtype=np.int64),
    )


class TestRemap(unittest.TestCase):
    def setUp(self) -> None:
        self.transform = compute_letterbox(800, 600, 640, 640)
        self.labels = ("person", "bicycle", "car")

    def test_boxes_return_to_image_space(self) -> None:
        result = remap(_candidates(), np.array([0, 1]), self.transform, self.labels)
        self.assertEqual((result.width, result.height), (800, 600))
        self.assertEqual(len(result), 2)

        full, small = result.detections
        self.assertTrue(np.allclose(full.as_yxyx(), (0, 0, 600, 800)))
        self.assertTrue(np.allclose(small.as_yxyx(), (50, 50, 150, 150)))
        self.assertEqual(full.label, "bicycle")
        self.assertEqual(small.label, "person")
        self.assertAlmostEqual(full.score, 0.9, places=6)

    def test_keep_order_is_preserved(self) -> None:
        result = remap(_candidates(), np.array([1, 0]), self.transform, self.labels)
        self.assertEqual(result.classes, [0, 1])

    def test_padding_boxes_collapse_onto_the_border(self) -> None:
        det = remap(_candidates(), np.array([2]), self.transform, self.labels).detections[0]
        self.assertEqual((det.y1, det.y2), (0.0, 0.0))
        self.assertTrue(np.allclose((det.x1, det.x2), (0, 50)))

    def test_unknown_class_ids(self) -> None:
        det = remap(_candidates(), np.array([2]), self.transform, self.labels).detections[0]
        self.assertEqual(det.class_id, 7)
        self.assertEqual(det.label, UNKNOWN_LABEL)

        det = remap(_candidates(), np.array([0]), self.transform, ()).detections[0]
        self.assertEqual(det.label, UNKNOWN_LABEL)

    def test_nothing_kept(self) -> None:
        result = remap(_candidates(), np.array([], dtype=np.int32), self.transform, self.labels)
        self.assertEqual(len(result), 0)
        self.assertEqual(result.to_payload(), {"boxes": [], "scores": [], "classes": [], "labels": []})

    def test_payload_is_flat(self) -> None:
        result = remap(_candidates(), np.array([1]), self.transform, self.labels)
        payload = result.to_payload()
        self.assertEqual(len(payload["boxes"]), 4)
        self.assertTrue(np.allclose(payload["boxes"], [50, 50, 150, 150]))
        self.assertEqual(payload["labels"], ["person"])
        self.assertEqual(payload["classes"], [0])


if __name__ == "__main__":
    unittest.main()
