"""
Tests for reading and writing flat image files.
"""

import os
import tempfile
import unittest

from flashdev import Geometry
from imagefile import load_image, save_image
from imgerrors import ImageIoError

GEOM = Geometry(image_size=8192, block_size=4096, page_size=256)


class TestImageFile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "fs.img")

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_load(self):
        data = bytearray(bytes(range(256)) * 32)
        save_image(self.path, data)
        self.assertEqual(os.path.getsize(self.path), 8192)
        got = load_image(self.path, GEOM)
        self.assertIsInstance(got, bytearray)
        self.assertEqual(got, data)

    def test_save_truncates(self):
        with open(self.path, "wb") as f:
            f.write(b"\x00" * 20000)
        save_image(self.path, bytearray(b"\xff" * 8192))
        self.assertEqual(os.path.getsize(self.path), 8192)

    def test_missing_file(self):
        with self.assertRaises(ImageIoError):
            load_image(self.path, GEOM)

    def test_short_file(self):
        with open(self.path, "wb") as f:
            f.write(b"\xff" * 8191)
        with self.assertRaises(ImageIoError):
            load_image(self.path, GEOM)

    def test_long_file_uses_prefix(self):
        with open(self.path, "wb") as f:
            f.write(b"\x11" * 8192 + b"\x22" * 100)
        got = load_image(self.path, GEOM)
        self.assertEqual(bytes(got), b"\x11" * 8192)

    def test_unwritable_destination(self):
        with self.assertRaises(ImageIoError):
            save_image(os.path.join(self._tmp.name, "no", "such", "dir.img"),
                       bytearray(8192))


if __name__ == "__main__":
    unittest.main()
