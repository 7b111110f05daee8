import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from PIL import Image

from image_resizer.batch import BatchContext
from image_resizer.structured_logging import StructuredLogger


class TestBatchContext(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)

    def test_derived_flags(self) -> None:
        batch = BatchContext.from_paths(["/tmp/a.png", "/tmp/B.GIF"])

        self.assertEqual(batch.count, 2)
        self.assertTrue(batch.has_multiple_files)
        self.assertTrue(batch.contains_gif)
        self.assertFalse(BatchContext.from_paths(["/tmp/a.png"]).contains_gif)

    def test_dimensions_are_read_once_and_cached(self) -> None:
        image_path = self.root / "image.png"
        Image.new("RGB", (40, 30)).save(image_path)
        batch = BatchContext.from_paths([image_path])

        self.assertIsNone(batch.dimensions)
        with mock.patch("image_resizer.batch.Image.open", wraps=Image.open) as opener:
            first = batch.load_dimensions()
            second = batch.load_dimensions()

        self.assertEqual(first.size, (40, 30))
        self.assertIs(first, second)
        self.assertEqual(opener.call_count, 1)

    def test_empty_batch_has_unknown_dimensions(self) -> None:
        batch = BatchContext.from_paths([])

        self.assertFalse(batch.load_dimensions().known)

    def test_probe_failure_is_logged(self) -> None:
        missing = self.root / "missing.png"
        log_dir = self.root / "logs"
        logger = StructuredLogger("batch", log_dir=log_dir)
        self.addCleanup(logger.close)
        batch = BatchContext.from_paths([missing], logger=logger)

        result = batch.load_dimensions()

        self.assertIsNone(result.size)
        lines = (log_dir / "app.log").read_text(encoding="utf-8").splitlines()
        payload = json.loads(lines[-1])
        self.assertEqual(payload["event"], "image_probe_failed")
        self.assertEqual(payload["error_code"], "AISR-006")


class TestBatchContextAsync(unittest.IsolatedAsyncioTestCase):
    async def test_async_probe_reads_first_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            first = Path(temp_dir) / "first.jpg"
            second = Path(temp_dir) / "second.jpg"
            Image.new("RGB", (16, 9)).save(first)
            Image.new("RGB", (32, 18)).save(second)
            batch = BatchContext.from_paths([first, second])

            result = await batch.load_dimensions_async()

        self.assertEqual(result.size, (16, 9))
        self.assertIs(batch.dimensions, result)


if __name__ == "__main__":
    unittest.main()
