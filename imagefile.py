"""
imagefile.py — move the flat image between disk and memory.

An image file is exactly ``geometry.image_size`` bytes; Geometry already
guarantees that is a whole number of blocks.
"""

from __future__ import annotations

import logging
from pathlib import Path

from flashdev import Geometry
from imgerrors import ImageIoError

log = logging.getLogger(__name__)


def load_image(path: str | Path, geometry: Geometry) -> bytearray:
    """Read exactly ``geometry.image_size`` bytes from *path*."""
    size = geometry.image_size
    buf = bytearray(size)
    try:
        with open(path, "rb") as f:
            got = f.readinto(buf)
            extra = len(f.read(1))
    except OSError as exc:
        raise ImageIoError(f"failed to open image file {path} "
                           f"({exc.strerror})") from exc
    if got != size:
        raise ImageIoError(f"couldn't read image file {path}: "
                           f"{got} of {size} bytes")
    if extra:
        log.debug("%s is larger than %d bytes, ignoring the rest", path, size)
    return buf


def save_image(path: str | Path, buffer: bytes | bytearray):
    """Write *buffer* to *path*, replacing whatever was there."""
    try:
        with open(path, "wb") as f:
            written = f.write(buffer)
    except OSError as exc:
        raise ImageIoError(f"failed to write image file {path} "
                           f"({exc.strerror})") from exc
    if written != len(buffer):
        raise ImageIoError(f"short write to {path}: "
                           f"{written} of {len(buffer)} bytes")
    log.debug("wrote %d bytes to %s", written, path)
