"""
exporter.py — recreate a host directory tree from a mounted littlefs image.

Export runs in three phases:

    collect    walk the image from '/' and gather every entry, each named
               by its full path ('sub/b.bin')
    structure  derive the directory set from the names by splitting at
               every '/', and create the missing ones on the host
    populate   write each file's contents

A failed file is recorded in the ExportReport and the rest still get
written; only a destination that can't be created stops the export.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass, field

from imgerrors import HostIoError, LfsImageError, PathError
from lfssession import LFS_TYPE_DIR, LFS_TYPE_REG, FilesystemSession

log = logging.getLogger(__name__)

DIR_MODE = 0o755


@dataclass(frozen=True)
class ImageEntry:
    """A file or directory in the image, named by its path from the root."""
    name: str
    type: int
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.type == LFS_TYPE_DIR

    @property
    def is_file(self) -> bool:
        return self.type == LFS_TYPE_REG


@dataclass
class ExportReport:
    exported: list[tuple[str, str, int]] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    failures: list[tuple[str, LfsImageError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


# ── Phase 1: collect ───────────────────────────────────────────────────

def collect_entries(session: FilesystemSession) -> list[ImageEntry]:
    """Every entry in the image, directories before their contents."""
    entries: list[ImageEntry] = []
    pending = deque([""])
    while pending:
        prefix = pending.popleft()
        for item in session.listdir("/" + prefix.rstrip("/")):
            name = prefix + item.name
            entries.append(ImageEntry(name, item.type, item.size))
            if item.is_dir:
                pending.append(name + "/")
    return entries


def list_entries(session: FilesystemSession) -> list[ImageEntry]:
    """Regular files in the image, for the list action."""
    return [e for e in collect_entries(session) if e.is_file]


# ── Phase 2: structure ─────────────────────────────────────────────────

def plan_directories(entries) -> list[str]:
    """Directories implied by *entries*, parents before children.

    A file named 'a/b/c.txt' implies 'a' and 'a/b'; directory entries
    imply themselves.  The first character is never treated as a
    separator, so a leading '/' does not produce an empty component.
    """
    dirs: dict[str, None] = {}
    for entry in entries:
        name = entry.name
        pos = name.find("/", 1)
        while pos != -1:
            dirs[name[:pos]] = None
            pos = name.find("/", pos + 1)
        if entry.is_dir:
            dirs[name.rstrip("/")] = None
    return sorted(dirs, key=lambda d: (d.count("/"), d))


def _host_path(dest: str, name: str) -> str:
    """Join an image name onto *dest*, refusing names that leave it."""
    rel = name.lstrip("/")
    parts = rel.split("/")
    if not rel or any(p in ("", ".", "..") for p in parts):
        raise PathError(f"unsafe entry name {name!r}")
    path = os.path.join(dest, *parts)
    root = os.path.abspath(dest)
    if os.path.commonpath([root, os.path.abspath(path)]) != root:
        raise PathError(f"entry {name!r} resolves outside {dest}")
    return path


def normalize_dest(dest: str) -> str:
    """Give a bare directory name a leading './' and a trailing '/'."""
    if "/" not in dest:
        dest = "./" + dest
    if not dest.endswith("/"):
        dest += "/"
    return dest


def ensure_dir(path: str) -> bool:
    """Create *path* (mode 755) unless it already exists.

    Returns True if it was created.  Raises HostIoError if creation fails
    or a non-directory is in the way.
    """
    if os.path.isdir(path):
        return False
    if os.path.exists(path):
        raise HostIoError(path, "exists and is not a directory")
    try:
        os.mkdir(path, DIR_MODE)
    except OSError as exc:
        raise HostIoError(path,
                          f"can not create directory ({exc.strerror})") from exc
    return True


# ── Phase 3: populate ──────────────────────────────────────────────────

def export_file(session: FilesystemSession, entry: ImageEntry,
                host_path: str) -> int:
    """Write the whole of *entry* to *host_path*.  Returns bytes written."""
    with session.open_file(entry.name, "r") as src:
        data = session.read(src, entry.size) if entry.size else b""
    if len(data) != entry.size:
        raise HostIoError(host_path,
                          f"short read from image, {len(data)} of {entry.size} bytes")
    try:
        with open(host_path, "wb") as dst:
            written = dst.write(data)
    except OSError as exc:
        raise HostIoError(host_path,
                          f"failed to open for writing ({exc.strerror})") from exc
    if written != len(data):
        raise HostIoError(host_path, f"short write, {written} of {len(data)} bytes")
    return written


def export_tree(session: FilesystemSession, host_dest: str) -> ExportReport:
    """Unpack the mounted image under *host_dest*."""
    dest = normalize_dest(host_dest)
    if not os.path.isdir(dest):
        log.info("Directory %s does not exists. Try to create it.", dest)
    ensure_dir(dest)

    report = ExportReport()
    entries = collect_entries(session)

    for d in plan_directories(entries):
        try:
            path = _host_path(dest, d)
            if ensure_dir(path):
                log.debug("created %s", path)
            report.directories.append(path)
        except LfsImageError as exc:
            log.error("Can not create directory %s: %s", d, exc)
            report.failures.append((d, exc))

    for entry in entries:
        if not entry.is_file:
            continue
        try:
            path = _host_path(dest, entry.name)
            size = export_file(session, entry, path)
        except LfsImageError as exc:
            log.error("Can not unpack %s! %s", entry.name, exc)
            report.failures.append((entry.name, exc))
            continue
        report.exported.append((entry.name, path, size))
    return report
