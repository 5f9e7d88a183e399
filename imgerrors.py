"""
imgerrors.py — exception hierarchy for the littlefs image tool.

Every failure the pack/unpack/list pipeline can report is one of these.
None of them crosses the CLI boundary: ``mklfs`` turns them into a
diagnostic on stderr and exit code 1.
"""

from __future__ import annotations


class LfsImageError(Exception):
    """Base class for image tool errors."""


class HostIoError(LfsImageError):
    """Open/read/write failure on the host filesystem."""

    def __init__(self, path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class ImageIoError(LfsImageError):
    """Image file too short, unreadable or unwritable."""


class EngineError(LfsImageError):
    """A littlefs call returned a negative error code."""

    def __init__(self, op: str, code: int, message: str = ""):
        text = f"{op} failed ({code})"
        if message:
            text += f": {message}"
        super().__init__(text)
        self.op = op
        self.code = code


class CapacityExceeded(EngineError):
    """littlefs reported LFS_ERR_NOSPC."""

    def __init__(self, op: str, code: int, message: str = "File system is full"):
        super().__init__(op, code, message)


class PathError(LfsImageError):
    """A path outside the expected root, or a name littlefs can't store."""


class FlashRangeError(LfsImageError):
    """Block device access outside the emulated flash."""
