"""
lfssession.py — mount lifecycle and engine-call boundary for littlefs.

A FilesystemSession binds one FlashDevice to one littlefs instance.  It
owns the mount state:

    format_and_mount()   unmount, reconfigure, format, mount
    mount()              no-op when already mounted
    unmount()            no-op when not mounted

Every other littlefs call goes through ``_call``, which turns the engine's
negative return codes (raised by littlefs-python as LittleFSError) into
EngineError, or CapacityExceeded for LFS_ERR_NOSPC.  Nothing above this
module sees a raw error code.

Use the session as a context manager so the filesystem is unmounted on
every exit path:

    with FilesystemSession(device) as fs:
        fs.format_and_mount()
        ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, NamedTuple

from littlefs import LittleFSError, lfs

from flashdev import FlashDevice
from imgerrors import CapacityExceeded, EngineError, PathError

log = logging.getLogger(__name__)

LFS_TYPE_REG = 1
LFS_TYPE_DIR = 2

_NOSPC = LittleFSError.Error.LFS_ERR_NOSPC
_EXIST = LittleFSError.Error.LFS_ERR_EXIST


class DirItem(NamedTuple):
    """One littlefs directory record (lfs_info)."""
    name: str
    type: int
    size: int

    @property
    def is_dir(self) -> bool:
        return self.type == LFS_TYPE_DIR


def engine_error(op: str, exc: LittleFSError) -> EngineError:
    """Map a LittleFSError onto the tool's error kinds."""
    code = getattr(exc, "code", -1)
    if code == _NOSPC:
        return CapacityExceeded(op, code)
    return EngineError(op, code, str(exc))


class FilesystemSession:
    """littlefs state for one image buffer."""

    def __init__(self, device: FlashDevice):
        self.device = device
        self.geometry = device.geometry
        self.mounted = False
        self.error: EngineError | None = None
        self._fs = None
        self._cfg = None

    def __enter__(self) -> "FilesystemSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unmount()

    # ── configuration ─────────────────────────────────────────────────

    def _configure(self):
        g = self.geometry
        self._fs = lfs.LFSFilesystem()
        self._cfg = lfs.LFSConfig(
            context=self.device,
            block_size=g.block_size,
            block_count=g.block_count,
            read_size=g.read_size,
            prog_size=g.prog_size,
            cache_size=g.cache_size,
            lookahead_size=g.lookahead_size,
            name_max=g.name_max,
        )
        log.debug("lfs config: %d blocks of %d bytes, page %d, lookahead %d",
                  g.block_count, g.block_size, g.page_size, g.lookahead_size)

    # ── lifecycle ─────────────────────────────────────────────────────

    def _try_mount(self) -> bool:
        self._configure()
        try:
            lfs.mount(self._fs, self._cfg)
        except LittleFSError as exc:
            log.debug("mount failed: %s", exc)
            self.error = engine_error("mount", exc)
            self.mounted = False
            return False
        self.error = None
        self.mounted = True
        return True

    def mount(self) -> bool:
        """Mount an existing filesystem.  Returns False instead of raising."""
        if self.mounted:
            return True
        return self._try_mount()

    def unmount(self):
        """Release engine state.  Safe to call when not mounted."""
        if not self.mounted:
            return
        self.mounted = False
        try:
            lfs.unmount(self._fs)
        except LittleFSError as exc:
            log.error("unmount failed: %s", exc)
        self.device.log_stats()

    def format_and_mount(self) -> bool:
        """Write a fresh filesystem over the whole device, then mount it."""
        self.unmount()
        self._configure()
        try:
            lfs.format(self._fs, self._cfg)
        except LittleFSError as exc:
            self.error = engine_error("format", exc)
            log.error("format failed: %s", self.error)
            return False
        if not self._try_mount():
            log.error("mount after format failed")
            return False
        return True

    # ── engine boundary ───────────────────────────────────────────────

    def _call(self, op: str, func, *args):
        if not self.mounted:
            raise EngineError(op, -1, "filesystem not mounted")
        try:
            return func(self._fs, *args)
        except LittleFSError as exc:
            raise engine_error(op, exc) from exc
        except UnicodeError as exc:
            # littlefs names are UTF-8; undecodable host names can't be stored
            raise PathError(f"{op}: name is not valid UTF-8: {exc}") from exc

    @contextmanager
    def open_file(self, path: str, mode: str = "r"):
        """Open an image file; the handle is closed however the block exits."""
        fh = self._call("file_open", lfs.file_open, path, mode)
        try:
            yield fh
        except BaseException:
            try:
                lfs.file_close(self._fs, fh)
            except LittleFSError as exc:
                log.debug("close of %s after error also failed: %s", path, exc)
            raise
        self._call("file_close", lfs.file_close, fh)

    def write(self, fh, data: bytes) -> int:
        return self._call("file_write", lfs.file_write, fh, data)

    def read(self, fh, size: int) -> bytes:
        return self._call("file_read", lfs.file_read, fh, size)

    def mkdir(self, path: str):
        """Create a directory; an existing one is fine."""
        try:
            self._call("mkdir", lfs.mkdir, path)
        except EngineError as exc:
            if exc.code != _EXIST:
                raise

    def remove(self, path: str):
        self._call("remove", lfs.remove, path)

    def stat(self, path: str) -> DirItem:
        st = self._call("stat", lfs.stat, path)
        return DirItem(st.name, st.type, st.size)

    def listdir(self, path: str = "/") -> Iterator[DirItem]:
        """Yield the records of one directory, without '.' and '..'."""
        dh = self._call("dir_open", lfs.dir_open, path)
        try:
            while True:
                info = self._call("dir_read", lfs.dir_read, dh)
                if info is None:
                    break
                if info.name in (".", ".."):
                    continue
                yield DirItem(info.name, info.type, info.size)
        finally:
            self._call("dir_close", lfs.dir_close, dh)

    def used_blocks(self) -> int:
        return self._call("fs_size", lfs.fs_size)
