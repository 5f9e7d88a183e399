#!/usr/bin/env python3
"""
mklfs.py — build, unpack and list littlefs filesystem images.

Images are built offline from a host directory and flashed to a device
later, or pulled off a device and inspected here.  The image is a flat
file of ``size`` bytes: ``size / block`` erase blocks of ``block`` bytes,
programmed in ``page``-byte units.

Usage:
    mklfs -c DATA_DIR [-s SIZE] [-p PAGE] [-b BLOCK] [-a] IMAGE
    mklfs -u DEST_DIR [-s SIZE] [-p PAGE] [-b BLOCK] IMAGE
    mklfs -l [-s SIZE] [-p PAGE] [-b BLOCK] IMAGE

Numbers accept any Python integer literal (65536, 0x10000) and SIZE also
takes a K or M suffix.  Exit status is 0 on success, 1 on any failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from exporter import ExportReport, ImageEntry, export_tree, list_entries
from flashdev import (
    DEFAULT_BLOCK_SIZE, DEFAULT_IMAGE_SIZE, DEFAULT_PAGE_SIZE,
    FlashDevice, Geometry,
)
from imagefile import load_image, save_image
from imgerrors import LfsImageError
from importer import ImportReport, import_tree
from lfssession import FilesystemSession

__version__ = "0.2.0"

log = logging.getLogger("mklfs")

# below -d 2 these stay at INFO
ENGINE_LOGGERS = ("flashdev", "lfssession")


# ── Actions ────────────────────────────────────────────────────────────

def pack_image(source: str | Path, image: str | Path, geometry: Geometry,
               include_all: bool = False) -> ImportReport:
    """Format a fresh image, import *source* into it and write it out.

    The image is written even when some files failed to import, so that
    everything which did fit is kept.
    """
    device = FlashDevice.erased(geometry)
    with FilesystemSession(device) as fs:
        if not fs.format_and_mount():
            raise fs.error
        report = import_tree(fs, str(source), include_all=include_all)
        log.debug("%d of %d blocks used", fs.used_blocks(), geometry.block_count)
    save_image(image, device.buffer)
    return report


def _mounted(image: str | Path, geometry: Geometry) -> FilesystemSession:
    device = FlashDevice(geometry, load_image(image, geometry))
    fs = FilesystemSession(device)
    if not fs.mount():
        raise fs.error
    return fs


def unpack_image(image: str | Path, dest: str | Path,
                 geometry: Geometry) -> ExportReport:
    """Recreate the image's directory tree under *dest*."""
    with _mounted(image, geometry) as fs:
        return export_tree(fs, str(dest))


def list_image(image: str | Path, geometry: Geometry) -> list[ImageEntry]:
    """All regular files in the image, named by full path."""
    with _mounted(image, geometry) as fs:
        return list_entries(fs)


# ── CLI ────────────────────────────────────────────────────────────────

def parse_number(text: str) -> int:
    """Integer in any base, with an optional K/M suffix."""
    text = text.strip()
    scale = 1
    if text[-1:].upper() == "K":
        scale, text = 1024, text[:-1]
    elif text[-1:].upper() == "M":
        scale, text = 1024 * 1024, text[:-1]
    try:
        return int(text, 0) * scale
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from None


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="mklfs",
        description="Build, unpack or list littlefs filesystem images",
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("-c", "--create", metavar="pack_dir",
                        help="create littlefs image from a directory")
    action.add_argument("-u", "--unpack", metavar="dest_dir",
                        help="unpack littlefs image to a directory")
    action.add_argument("-l", "--list", action="store_true",
                        help="list files in littlefs image")
    parser.add_argument("image_file", help="littlefs image file")
    parser.add_argument("-s", "--size", type=parse_number,
                        default=DEFAULT_IMAGE_SIZE,
                        help=f"fs image size, in bytes (default: {DEFAULT_IMAGE_SIZE:#x})")
    parser.add_argument("-p", "--page", type=parse_number,
                        default=DEFAULT_PAGE_SIZE,
                        help=f"fs page size, in bytes (default: {DEFAULT_PAGE_SIZE})")
    parser.add_argument("-b", "--block", type=parse_number,
                        default=DEFAULT_BLOCK_SIZE,
                        help=f"fs block size, in bytes (default: {DEFAULT_BLOCK_SIZE})")
    parser.add_argument("-a", "--all-files", action="store_true",
                        help="when creating an image, include files which are "
                             "normally ignored (.DS_Store, .git, .gitignore, "
                             ".gitmodules)")
    parser.add_argument("-d", "--debug", type=int, default=0,
                        choices=range(0, 6), metavar="0-5",
                        help="debug level: 0 none, 1 per-file detail, "
                             "2-5 also littlefs and flash device detail")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        format="%(message)s", stream=sys.stderr,
        level=logging.DEBUG if args.debug > 0 else logging.INFO,
        force=True,
    )
    engine_level = logging.NOTSET if args.debug >= 2 else logging.INFO
    for name in ENGINE_LOGGERS:
        logging.getLogger(name).setLevel(engine_level)
    if args.debug > 0:
        print("Debug output enabled")

    try:
        geometry = Geometry(image_size=args.size, block_size=args.block,
                            page_size=args.page)
    except ValueError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 1

    try:
        if args.create is not None:
            report = pack_image(args.create, args.image_file, geometry,
                                include_all=args.all_files)
            for name, _size in report.imported:
                print(name)
            if not report.ok:
                print(f"error: {len(report.failures)} file(s) not added",
                      file=sys.stderr)
                return 1

        elif args.unpack is not None:
            report = unpack_image(args.image_file, args.unpack, geometry)
            for name, path, size in report.exported:
                print(f"{name}\t > {path}\tsize: {size} Bytes")
            if not report.ok:
                return 1

        else:
            for entry in list_image(args.image_file, geometry):
                print(f"{entry.size}\t{entry.name}")

    except LfsImageError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
