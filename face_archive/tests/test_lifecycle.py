"""Reference counting and init/teardown of the shared recognizer."""
from __future__ import annotations

import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

from facerec_lib import config as config_mod, lifecycle
from facerec_lib.errors import HandleClosedError, InitializationError
from facerec_lib.faces import KnownFace, Rectangle
from facerec_lib.label_store import LabelStore
from facerec_lib.lifecycle import RecognizerPool

from fake_extractor import FakeExtractorFactory, vec

RECT = Rectangle(0, 0, 40, 40)
IMAGES = {"bob.jpg": [(RECT, vec(0, 1, 0))]}


class RecognizerPoolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store_path = Path(self.tmpdir.name) / "facerec.json"
        self.factory = FakeExtractorFactory(IMAGES)
        self.pool = RecognizerPool(self.store_path, self.factory)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_pool_starts_uninitialized(self) -> None:
        self.assertFalse(self.pool.initialized)
        self.assertEqual(self.pool.active_count, 0)
        self.assertEqual(self.factory.created, [])

    def test_first_acquire_initializes_once(self) -> None:
        handles = [self.pool.acquire() for _ in range(3)]
        self.assertTrue(self.pool.initialized)
        self.assertEqual(self.pool.active_count, 3)
        self.assertEqual(len(self.factory.created), 1)
        for handle in handles:
            handle.close()

    def test_last_release_tears_down(self) -> None:
        handles = [self.pool.acquire() for _ in range(4)]
        extractor = self.factory.created[0]
        for count, handle in enumerate(handles[:-1], start=1):
            handle.close()
            self.assertEqual(self.pool.active_count, 4 - count)
            self.assertTrue(self.pool.initialized)
            self.assertFalse(extractor.closed)
        handles[-1].close()
        self.assertEqual(self.pool.active_count, 0)
        self.assertFalse(self.pool.initialized)
        self.assertTrue(extractor.closed)

    def test_acquire_while_active_does_not_reload_store(self) -> None:
        first = self.pool.acquire()
        first.train("bob.jpg", "Bob")
        # Someone else rewrites the file; the live index stays authoritative.
        LabelStore(self.store_path).save([vec(1, 0, 0)], [0], ["Mallory"])
        with self.pool.acquire() as second:
            self.assertEqual(second.labels(), ["Bob"])
        first.close()

    def test_reacquire_after_teardown_rebuilds_from_disk(self) -> None:
        with self.pool.acquire() as handle:
            handle.train("bob.jpg", "Bob")
        with self.pool.acquire() as handle:
            self.assertEqual(handle.recognize("bob.jpg").known, [KnownFace("Bob", RECT)])
        self.assertEqual(len(self.factory.created), 2)

    def test_double_close_releases_once(self) -> None:
        keeper = self.pool.acquire()
        handle = self.pool.acquire()
        handle.close()
        handle.close()
        self.pool.release(handle)
        self.assertEqual(self.pool.active_count, 1)
        self.assertTrue(self.pool.initialized)
        keeper.close()
        self.assertFalse(self.pool.initialized)

    def test_closed_handle_refuses_work(self) -> None:
        handle = self.pool.acquire()
        handle.close()
        self.assertTrue(handle.closed)
        with self.assertRaises(HandleClosedError):
            handle.recognize("bob.jpg")
        with self.assertRaises(HandleClosedError):
            handle.train("bob.jpg", "Bob")

    def test_release_rejects_foreign_handle(self) -> None:
        other = RecognizerPool(self.store_path, FakeExtractorFactory(IMAGES))
        handle = other.acquire()
        with self.assertRaises(ValueError):
            self.pool.release(handle)
        handle.close()

    def test_factory_failure_rolls_back(self) -> None:
        def broken():
            raise RuntimeError("model missing")

        pool = RecognizerPool(self.store_path, broken)
        with self.assertRaises(InitializationError) as ctx:
            pool.acquire()
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(pool.active_count, 0)
        self.assertFalse(pool.initialized)

    def test_corrupt_store_rolls_back_and_closes_extractor(self) -> None:
        self.store_path.write_text(json.dumps({"label": "Bob", "descriptor": [0.1]}) + "\n", encoding="utf-8")
        with self.assertRaises(InitializationError):
            self.pool.acquire()
        self.assertEqual(self.pool.active_count, 0)
        self.assertFalse(self.pool.initialized)
        self.assertTrue(self.factory.created[0].closed)

        # Once the store is fixed the next acquire succeeds from scratch.
        self.store_path.unlink()
        with self.pool.acquire() as handle:
            self.assertEqual(handle.labels(), [])
        self.assertEqual(len(self.factory.created), 2)

    def test_concurrent_paired_acquire_release(self) -> None:
        start = threading.Barrier(8)
        errors = []

        def worker() -> None:
            try:
                start.wait()
                for _ in range(25):
                    with self.pool.acquire() as handle:
                        handle.recognize("bob.jpg")
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(errors, [])
        self.assertEqual(self.pool.active_count, 0)
        self.assertFalse(self.pool.initialized)
        self.assertTrue(all(extractor.closed for extractor in self.factory.created))


class DefaultPoolTests(unittest.TestCase):
    def test_default_pool_is_shared_and_pinned_to_its_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, mock.patch.object(lifecycle, "_default_pool", None):
            models = Path(tmp) / "models"
            first = config_mod.load_config(storage_path=Path(tmp) / "a", model_dir=models)
            other = config_mod.load_config(storage_path=Path(tmp) / "b", model_dir=models)
            pool = lifecycle.get_default_pool(first)
            self.assertIs(lifecycle.get_default_pool(first), pool)
            with self.assertRaises(ValueError):
                lifecycle.get_default_pool(other)
            self.assertFalse(pool.initialized)


if __name__ == "__main__":
    unittest.main()
