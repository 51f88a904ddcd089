# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/utils/files.py
from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

log = logging.getLogger("clusterprep")


def backup_path_for(path: Path, stamp: Optional[int] = None) -> Path:
    stamp = int(time.time()) if stamp is None else stamp
    return path.with_name(f"{path.name}.backup.{stamp}")


def backup_file(path: Path) -> Optional[Path]:
    """
    Copy *path* to ``<path>.backup.<epoch>`` and return the backup path.
    Returns None when there is nothing to back up. Metadata is preserved.
    """
    if not path.is_file():
        return None
    base = backup_path_for(path)
    dest, n = base, 0
    while dest.exists():
        n += 1
        dest = base.with_name(f"{base.name}.{n}")
    shutil.copy2(path, dest)
    return dest


def restore_file(backup: Path, path: Path) -> None:
    """Put *backup* back in place of *path* without a torn intermediate state."""
    atomic_write_bytes(path, backup.read_bytes(), mode=backup.stat().st_mode & 0o7777)


def atomic_write_bytes(path: Path, data: bytes, *, mode: Optional[int] = None) -> None:
    """
    Write *data* to a temp file next to *path* and os.replace() it over the
    target, so readers see either the old or the new content.
    """
    if mode is None and path.exists():
        mode = path.stat().st_mode & 0o7777
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        if path.exists():
            st = path.stat()
            with contextlib.suppress(PermissionError):
                os.chown(tmp, st.st_uid, st.st_gid)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


def atomic_write_text(path: Path, text: str, *, mode: Optional[int] = None) -> None:
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


@contextlib.contextmanager
def scoped_tempfile(prefix: str = "clusterprep.", suffix: str = "") -> Iterator[Path]:
    """
    Yield a fresh temporary file path that is removed on every exit path,
    including KeyboardInterrupt and SystemExit raised by signal handlers.
    """
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()


@dataclass(frozen=True)
class ManagedTextBlock:
    """
    A marker-delimited region of a text file owned by clusterprep.

    ``apply(text)`` replaces the interior of the first block, or appends a
    new block (preceded by a blank line) when none exists. Lines outside the
    block are preserved as-is.
    """

    begin_marker: str
    end_marker: str
    content: str

    def render(self) -> str:
        body = self.content.rstrip("\n")
        lines = [self.begin_marker]
        if body:
            lines.append(body)
        lines.append(self.end_marker)
        return "\n".join(lines)

    def find(self, lines: list[str]) -> Optional[tuple[int, int]]:
        try:
            start = lines.index(self.begin_marker)
        except ValueError:
            return None
        for i in range(start + 1, len(lines)):
            if lines[i] == self.end_marker:
                return start, i
        # begin marker without end: treat the rest of the file as the block
        return start, len(lines)

    def apply(self, text: str) -> str:
        lines = text.splitlines()
        span = self.find(lines)
        block = self.render().split("\n")

        if span is None:
            prefix = text if not text or text.endswith("\n") else text + "\n"
            return prefix + "\n" + "\n".join(block) + "\n"

        start, end = span
        tail = lines[end + 1:]
        # drop duplicate blocks further down the file
        while True:
            dup = self.find(tail)
            if dup is None:
                break
            tail = tail[: dup[0]] + tail[dup[1] + 1:]
        new_lines = lines[:start] + block + tail
        return "\n".join(new_lines) + "\n"
