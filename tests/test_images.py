"""Tests for image validation, persistence and cleanup."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from fakes import PNG_BYTES

from prompt_relay.exceptions import ImageValidationError
from prompt_relay.images import (
    ImageAttachment,
    ImageStore,
    decode_data_url,
    guess_mime_type,
    is_image_path,
    sanitize_file_name,
)


class ImageHelperTests(unittest.TestCase):
    def test_attachment_needs_exactly_one_source(self) -> None:
        with self.assertRaises(ValueError):
            ImageAttachment(name="x.png", origin="clipboard")
        with self.assertRaises(ValueError):
            ImageAttachment(name="x.png", origin="clipboard", data=b"1", path="/x.png")

    def test_decode_data_url(self) -> None:
        self.assertEqual(decode_data_url("data:image/png;base64,aGVsbG8="), (b"hello", "image/png"))
        self.assertEqual(decode_data_url("aGVsbG8="), (b"hello", ""))
        with self.assertRaises(ImageValidationError):
            decode_data_url("data:image/png;base64,@@not-base64@@")

    def test_sanitize_file_name(self) -> None:
        self.assertEqual(sanitize_file_name("../we ird?.png"), "we_ird_.png")
        self.assertEqual(sanitize_file_name(""), "image")

    def test_mime_and_extension_checks(self) -> None:
        self.assertEqual(guess_mime_type("a.PNG"), "image/png")
        self.assertEqual(guess_mime_type("a.webp"), "image/webp")
        self.assertTrue(is_image_path("/x/y.JPG"))
        self.assertFalse(is_image_path("/x/y.txt"))


class ImageStoreTests(unittest.TestCase):
    """Validate the per-session temp directory."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = ImageStore(self.root, max_bytes=64)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_save_bytes_writes_under_session_directory(self) -> None:
        path = self.store.save_bytes(PNG_BYTES, "shot.png")
        self.assertEqual(path.parent, self.store.directory)
        self.assertEqual(path.read_bytes(), PNG_BYTES)
        self.assertTrue(path.name.endswith("-shot.png"))

    def test_validation_failures(self) -> None:
        with self.assertRaises(ImageValidationError):
            self.store.save_bytes(PNG_BYTES, "notes.txt")
        with self.assertRaises(ImageValidationError):
            self.store.save_bytes(b"", "empty.png")
        with self.assertRaises(ImageValidationError):
            self.store.save_bytes(b"x" * 65, "big.png")

    def test_check_path(self) -> None:
        image = self.root / "ok.png"
        image.write_bytes(PNG_BYTES)
        self.assertEqual(self.store.check_path(str(image)), image)
        with self.assertRaises(ImageValidationError):
            self.store.check_path(str(self.root / "missing.png"))

    def test_resolve_collects_failures(self) -> None:
        resolution = self.store.resolve(
            [
                ImageAttachment(name="a.png", origin="clipboard", data=PNG_BYTES),
                ImageAttachment(name="b.png", origin="drop", path=str(self.root / "nope.png")),
                ImageAttachment(name="c.png", origin="clipboard", data=b"x" * 100),
            ]
        )
        self.assertEqual(len(resolution.paths), 1)
        self.assertEqual(resolution.failures, ["b.png", "c.png"])
        self.assertEqual(resolution.warning, "Failed to attach 2 image(s): b.png, c.png")

    def test_cleanup(self) -> None:
        first = self.store.save_bytes(PNG_BYTES, "a.png")
        self.assertEqual(self.store.cleanup_older_than(3600), 0)
        self.assertEqual(self.store.cleanup_older_than(-1), 1)
        self.assertFalse(first.exists())

        second = self.store.save_bytes(PNG_BYTES, "b.png")
        self.store.cleanup_all()
        self.assertFalse(second.exists())
        self.assertFalse(self.store.directory.exists())


if __name__ == "__main__":
    unittest.main()
