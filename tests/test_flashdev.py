"""
Tests for the in-memory flash emulation and image geometry.
"""

import unittest

from flashdev import ERASED_BYTE, FlashDevice, Geometry
from imgerrors import FlashRangeError


def small_geometry() -> Geometry:
    return Geometry(image_size=4 * 512, block_size=512, page_size=64)


class TestGeometry(unittest.TestCase):
    def test_defaults(self):
        g = Geometry()
        self.assertEqual(g.image_size, 0x10000)
        self.assertEqual(g.block_size, 4096)
        self.assertEqual(g.page_size, 256)
        self.assertEqual(g.block_count, 16)
        self.assertEqual(g.read_size, 256)
        self.assertEqual(g.prog_size, 256)

    def test_size_not_block_multiple(self):
        with self.assertRaises(ValueError):
            Geometry(image_size=65536 + 2, block_size=4096)

    def test_page_larger_than_block(self):
        with self.assertRaises(ValueError):
            Geometry(image_size=8192, block_size=1024, page_size=2048)

    def test_page_not_dividing_block(self):
        with self.assertRaises(ValueError):
            Geometry(image_size=8192, block_size=1024, page_size=384)

    def test_non_positive(self):
        with self.assertRaises(ValueError):
            Geometry(block_size=0)
        with self.assertRaises(ValueError):
            Geometry(page_size=-256)

    def test_too_few_blocks(self):
        with self.assertRaises(ValueError):
            Geometry(image_size=4096, block_size=4096)

    def test_lookahead_alignment(self):
        with self.assertRaises(ValueError):
            Geometry(lookahead_size=12)


class TestFlashDevice(unittest.TestCase):
    def setUp(self):
        self.geom = small_geometry()
        self.dev = FlashDevice.erased(self.geom)

    def test_fresh_device_is_erased(self):
        """A new device is all 0xFF."""
        self.assertEqual(len(self.dev.buffer), self.geom.image_size)
        self.assertEqual(set(self.dev.buffer), {ERASED_BYTE})

    def test_prog_and_read_addressing(self):
        """block/offset map to block*block_size + offset."""
        self.assertEqual(self.dev.prog(None, 2, 16, b"\x01\x02\x03"), 0)
        start = 2 * 512 + 16
        self.assertEqual(bytes(self.dev.buffer[start:start + 3]), b"\x01\x02\x03")
        self.assertEqual(self.dev.read(None, 2, 16, 3), b"\x01\x02\x03")
        self.assertEqual(self.dev.read(None, 2, 15, 1), b"\xff")
        self.assertEqual(self.dev.read(None, 2, 19, 1), b"\xff")

    def test_prog_overwrites_verbatim(self):
        """prog does not AND with the old contents."""
        self.dev.prog(None, 0, 0, b"\x0f")
        self.dev.prog(None, 0, 0, b"\xf0")
        self.assertEqual(self.dev.read(None, 0, 0, 1), b"\xf0")

    def test_erase_whole_block(self):
        for block in range(self.geom.block_count):
            self.dev.prog(None, block, 0, b"\x00" * 512)
        self.assertEqual(self.dev.erase(None, 1), 0)
        self.assertEqual(self.dev.read(None, 1, 0, 512), b"\xff" * 512)
        self.assertEqual(self.dev.read(None, 0, 0, 512), b"\x00" * 512)
        self.assertEqual(self.dev.read(None, 2, 0, 512), b"\x00" * 512)

    def test_sync_is_noop(self):
        before = bytes(self.dev.buffer)
        self.assertEqual(self.dev.sync(None), 0)
        self.assertEqual(bytes(self.dev.buffer), before)

    def test_read_returns_copy(self):
        data = self.dev.read(None, 0, 0, 4)
        self.dev.prog(None, 0, 0, b"\x00\x00\x00\x00")
        self.assertEqual(data, b"\xff\xff\xff\xff")

    def test_out_of_range(self):
        with self.assertRaises(FlashRangeError):
            self.dev.read(None, 4, 0, 1)
        with self.assertRaises(FlashRangeError):
            self.dev.read(None, 0, 510, 4)
        with self.assertRaises(FlashRangeError):
            self.dev.prog(None, -1, 0, b"x")
        with self.assertRaises(FlashRangeError):
            self.dev.erase(None, 99)

    def test_counters(self):
        self.dev.read(None, 0, 0, 1)
        self.dev.prog(None, 0, 0, b"x")
        self.dev.erase(None, 0)
        self.dev.erase(None, 1)
        self.assertEqual((self.dev.reads, self.dev.progs, self.dev.erases),
                         (1, 1, 2))

    def test_supplied_buffer(self):
        buf = bytearray(self.geom.image_size)
        dev = FlashDevice(self.geom, buf)
        dev.prog(None, 3, 0, b"\xaa")
        self.assertIs(dev.buffer, buf)
        self.assertEqual(buf[3 * 512], 0xAA)

    def test_supplied_buffer_wrong_size(self):
        with self.assertRaises(ValueError):
            FlashDevice(self.geom, bytearray(100))


if __name__ == "__main__":
    unittest.main()
