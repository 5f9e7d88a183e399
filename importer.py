"""
importer.py — copy a host directory tree into a mounted littlefs image.

The walk is depth-first.  Each host directory is listed once, and its
entries come out as HostFile / HostDir / HostOther records in sorted
name order, so the same tree always produces the same image.

A file that fails to import is recorded in the ImportReport and the walk
carries on, so one run shows every problem in the tree.  The report is
failed if anything failed.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from typing import Iterator, Union

from imgerrors import CapacityExceeded, EngineError, HostIoError, LfsImageError
from lfssession import FilesystemSession

log = logging.getLogger(__name__)

# Unless include_all is set, these names are left out of the image
IGNORED_NAMES = frozenset({
    ".DS_Store",
    ".git",
    ".gitignore",
    ".gitmodules",
})


# ── Host entries ───────────────────────────────────────────────────────

@dataclass
class HostFile:
    name: str
    path: str
    size: int


@dataclass
class HostDir:
    name: str
    path: str
    is_link: bool = False


@dataclass
class HostOther:
    name: str
    path: str


HostEntry = Union[HostFile, HostDir, HostOther]


def _classify(path: str, names: list[str]) -> Iterator[HostEntry]:
    for name in names:
        if name in (".", ".."):
            continue
        full = os.path.join(path, name)
        try:
            st = os.stat(full)
        except OSError:
            # dangling symlink, or vanished since the listing
            yield HostOther(name, full)
            continue
        if stat.S_ISDIR(st.st_mode):
            yield HostDir(name, full, is_link=os.path.islink(full))
        elif stat.S_ISREG(st.st_mode):
            yield HostFile(name, full, st.st_size)
        else:
            yield HostOther(name, full)


def scan_dir(path: str) -> Iterator[HostEntry]:
    """List one host directory and return its entries, sorted by name.

    The listing happens here, so an unreadable directory raises
    HostIoError immediately; entry types are resolved lazily as the
    iterator is consumed.  Types follow stat(), so a symlink to a regular
    file is a HostFile.  Symlinked directories come out as HostDir with
    ``is_link`` set.
    """
    try:
        names = sorted(os.listdir(path))
    except OSError as exc:
        raise HostIoError(path, f"can't read directory ({exc.strerror})") from exc
    return _classify(path, names)


# ── Report ─────────────────────────────────────────────────────────────

@dataclass
class ImportReport:
    imported: list[tuple[str, int]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[tuple[str, LfsImageError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total_bytes(self) -> int:
        return sum(size for _, size in self.imported)

    @property
    def out_of_space(self) -> bool:
        return any(isinstance(e, CapacityExceeded) for _, e in self.failures)


# ── Import ─────────────────────────────────────────────────────────────

def import_file(session: FilesystemSession, image_path: str, host_path: str,
                chunk_size: int | None = None) -> int:
    """Copy one host file to *image_path* (created or truncated).

    Returns the number of bytes written.  Raises HostIoError for host-side
    failures, CapacityExceeded when the image fills up, EngineError for any
    other littlefs failure and PathError for names littlefs can't hold.  On
    any failure after the image file was opened it is removed again.
    """
    chunk_size = chunk_size or session.geometry.page_size
    try:
        src = open(host_path, "rb")
    except OSError as exc:
        raise HostIoError(host_path,
                          f"failed to open for reading ({exc.strerror})") from exc

    opened = False
    with src:
        size = os.fstat(src.fileno()).st_size
        log.debug("file size: %d", size)
        left = size
        try:
            with session.open_file(image_path, "w") as dst:
                opened = True
                while left > 0:
                    try:
                        chunk = src.read(min(chunk_size, left))
                    except OSError as exc:
                        raise HostIoError(host_path,
                                          f"read error ({exc.strerror})") from exc
                    if not chunk:
                        raise HostIoError(host_path,
                                          f"read error, {left} bytes short")
                    try:
                        session.write(dst, chunk)
                    except EngineError:
                        log.debug("data left: %d", left)
                        raise
                    left -= len(chunk)
        except LfsImageError:
            if opened:
                _discard(session, image_path)
            raise
    return size


def _discard(session: FilesystemSession, image_path: str):
    """Drop a partly written file so a failed import leaves nothing behind."""
    try:
        session.remove(image_path)
    except EngineError as exc:
        log.warning("could not remove partial %s: %s", image_path, exc)


def _walk(session: FilesystemSession, host_dir: str, sub_path: str,
          include_all: bool, chunk_size: int | None, report: ImportReport):
    try:
        entries = scan_dir(host_dir)
    except HostIoError as exc:
        log.warning("warning: can't read source directory %s", host_dir)
        report.failures.append((sub_path, exc))
        return

    for entry in entries:
        if not include_all and entry.name in IGNORED_NAMES:
            log.info("skipping %s", entry.name)
            report.skipped.append(entry.path)
            continue

        image_path = sub_path + entry.name

        if isinstance(entry, HostDir):
            if entry.is_link:
                log.info("skipping %s (symlinked directory)", entry.name)
                report.skipped.append(entry.path)
                continue
            try:
                session.mkdir(image_path)
            except LfsImageError as exc:
                log.error("Error for adding content from %s: %s",
                          entry.name, exc)
                report.failures.append((image_path, exc))
                continue
            _walk(session, entry.path, image_path + "/",
                  include_all, chunk_size, report)
            continue

        if isinstance(entry, HostOther):
            log.info("skipping %s", entry.name)
            report.skipped.append(entry.path)
            continue

        log.info("adding %s", image_path)
        try:
            size = import_file(session, image_path, entry.path, chunk_size)
        except CapacityExceeded as exc:
            log.error("error adding %s: File system is full.", image_path)
            report.failures.append((image_path, exc))
            continue
        except LfsImageError as exc:
            log.error("error adding %s: %s", image_path, exc)
            report.failures.append((image_path, exc))
            continue
        report.imported.append((image_path, size))


def import_tree(session: FilesystemSession, host_root: str,
                include_all: bool = False,
                chunk_size: int | None = None) -> ImportReport:
    """Copy everything under *host_root* into the mounted image.

    In-image names are the paths relative to *host_root*, rooted at '/'.
    """
    if not os.path.isdir(host_root):
        raise HostIoError(host_root, "source is not a directory")
    report = ImportReport()
    _walk(session, host_root, "/", include_all, chunk_size, report)
    return report
