import tempfile
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from facerec_lib import config as config_mod
from facerec_lib.errors import DetectionFailed
from facerec_lib.faces import Rectangle, _load_oriented_bgr, _scale_rect, normalize_descriptor
from facerec_lib.paths import is_candidate_image, iter_images, store_path


class DescriptorHelpersTests(unittest.TestCase):
    def test_normalize_descriptor_returns_unit_float32(self) -> None:
        result = normalize_descriptor([3.0, 4.0])
        self.assertEqual(result.dtype, np.float32)
        np.testing.assert_allclose(result, [0.6, 0.8], rtol=1e-6)

    def test_normalize_descriptor_rejects_zero_vector(self) -> None:
        self.assertIsNone(normalize_descriptor([0.0, 0.0]))

    def test_scale_rect_maps_back_to_original_pixels(self) -> None:
        rect = _scale_rect([10.0, 20.0, 30.0, 40.0], 1000, 800, 0.5)
        self.assertEqual(rect, Rectangle(20, 40, 80, 120))

    def test_scale_rect_clamps_to_image(self) -> None:
        rect = _scale_rect([-5.0, -5.0, 50.0, 50.0], 30, 30, 1.0)
        self.assertEqual(rect, Rectangle(0, 0, 30, 30))


class ImageLoadingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_load_returns_bgr_pixels(self) -> None:
        path = self.root / "red.png"
        Image.new("RGB", (3, 2), (255, 0, 0)).save(path)
        array = _load_oriented_bgr(path)
        self.assertEqual(array.shape, (2, 3, 3))
        self.assertEqual(tuple(array[0, 0]), (0, 0, 255))

    def test_unreadable_image_fails_detection(self) -> None:
        path = self.root / "broken.jpg"
        path.write_bytes(b"not an image")
        with self.assertRaises(DetectionFailed):
            _load_oriented_bgr(path)

    def test_missing_image_fails_detection(self) -> None:
        with self.assertRaises(DetectionFailed):
            _load_oriented_bgr(self.root / "missing.jpg")

    def test_iter_images_filters_extensions(self) -> None:
        (self.root / "nested").mkdir()
        for name in ("b.jpg", "a.PNG", "notes.txt", "nested/c.jpeg"):
            (self.root / name).write_bytes(b"")
        found = [path.relative_to(self.root).as_posix() for path in iter_images(self.root)]
        self.assertEqual(found, ["a.PNG", "b.jpg", "nested/c.jpeg"])
        self.assertFalse(is_candidate_image(Path("clip.mov")))


class ConfigTests(unittest.TestCase):
    def test_load_config_uses_given_storage(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            storage = Path(tmp) / "store"
            cfg = config_mod.load_config(storage_path=storage, model_dir=Path(tmp) / "models")
            self.assertTrue(storage.is_dir())
            self.assertEqual(cfg.store_path, store_path(storage))
            self.assertEqual(cfg.store_path.name, "facerec.json")
            self.assertEqual(cfg.model_dir, Path(tmp) / "models")

    def test_load_config_validates_thresholds(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ValueError):
                config_mod.load_config(storage_path=Path(tmp), min_score=1.5)
            with self.assertRaises(ValueError):
                config_mod.load_config(storage_path=Path(tmp), match_threshold=0)


if __name__ == "__main__":
    unittest.main()
