"""
flashdev.py — in-memory NOR flash emulation for the littlefs engine.

The whole image lives in one bytearray.  littlefs addresses it as
``block_count`` blocks of ``block_size`` bytes and only ever calls four
operations on it:

    read(block, off, size)    copy out  buffer[block*block_size + off : +size]
    prog(block, off, data)    overwrite the same range verbatim
    erase(block)              fill the block with 0xFF
    sync()                    nothing to do, memory is always durable

This is idealised flash: prog does not check that the range was erased
first, and nothing ever wears out.  Persisting the buffer to disk is the
job of imagefile.py.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from littlefs.context import UserContext

from imgerrors import FlashRangeError

log = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────

ERASED_BYTE = 0xFF

DEFAULT_IMAGE_SIZE = 0x10000
DEFAULT_BLOCK_SIZE = 4096
DEFAULT_PAGE_SIZE = 256
DEFAULT_LOOKAHEAD_SIZE = 128
DEFAULT_NAME_MAX = 32


# ── Geometry ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Geometry:
    """Image and flash layout handed to littlefs."""
    image_size: int = DEFAULT_IMAGE_SIZE
    block_size: int = DEFAULT_BLOCK_SIZE
    page_size: int = DEFAULT_PAGE_SIZE
    lookahead_size: int = DEFAULT_LOOKAHEAD_SIZE
    name_max: int = DEFAULT_NAME_MAX

    def __post_init__(self):
        for field_name in ("image_size", "block_size", "page_size",
                           "lookahead_size", "name_max"):
            if getattr(self, field_name) <= 0:
                raise ValueError(f"{field_name} must be positive")
        if self.image_size % self.block_size:
            raise ValueError(
                f"image size {self.image_size} is not a multiple of "
                f"block size {self.block_size}")
        if self.page_size > self.block_size or self.block_size % self.page_size:
            raise ValueError(
                f"page size {self.page_size} must divide "
                f"block size {self.block_size}")
        if self.lookahead_size % 8:
            raise ValueError("lookahead size must be a multiple of 8")
        if self.block_count < 2:
            raise ValueError(
                f"image holds {self.block_count} block(s), littlefs needs 2")

    @property
    def block_count(self) -> int:
        return self.image_size // self.block_size

    @property
    def read_size(self) -> int:
        return self.page_size

    @property
    def prog_size(self) -> int:
        return self.page_size

    @property
    def cache_size(self) -> int:
        return self.page_size


# ── Device ─────────────────────────────────────────────────────────────

class FlashDevice(UserContext):
    """Block device backed by a bytearray, usable as an LFSConfig context."""

    def __init__(self, geometry: Geometry, buffer: bytearray | None = None):
        if buffer is None:
            buffer = bytearray([ERASED_BYTE]) * geometry.image_size
        elif len(buffer) != geometry.image_size:
            raise ValueError(
                f"buffer is {len(buffer)} bytes, "
                f"geometry expects {geometry.image_size}")
        super().__init__(0)
        self.buffer = buffer
        self.geometry = geometry
        self.reads = 0
        self.progs = 0
        self.erases = 0

    @classmethod
    def erased(cls, geometry: Geometry) -> "FlashDevice":
        """A device whose every byte is in the erased state."""
        return cls(geometry)

    def _span(self, block: int, off: int, size: int) -> tuple[int, int]:
        bs = self.geometry.block_size
        if not 0 <= block < self.geometry.block_count:
            raise FlashRangeError(f"block {block} out of range")
        if off < 0 or size < 0 or off + size > bs:
            raise FlashRangeError(
                f"range {off}+{size} crosses block {block} boundary")
        start = block * bs + off
        return start, start + size

    # ── littlefs callbacks ────────────────────────────────────────────

    def read(self, cfg, block: int, off: int, size: int) -> bytes:
        start, end = self._span(block, off, size)
        self.reads += 1
        return bytes(self.buffer[start:end])

    def prog(self, cfg, block: int, off: int, data: bytes) -> int:
        start, end = self._span(block, off, len(data))
        self.buffer[start:end] = data
        self.progs += 1
        return 0

    def erase(self, cfg, block: int) -> int:
        start, end = self._span(block, 0, self.geometry.block_size)
        self.buffer[start:end] = bytes([ERASED_BYTE]) * (end - start)
        self.erases += 1
        return 0

    def sync(self, cfg) -> int:
        return 0

    def log_stats(self):
        log.debug("flash: %d reads, %d progs, %d erases",
                  self.reads, self.progs, self.erases)
