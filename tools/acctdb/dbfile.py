"""Locked access to one flat database file.

Locks are advisory ``flock(2)`` locks taken on a hidden sidecar
``.<file>.acctdb.lock``; ``<file>.lock`` belongs to shadow-utils.
Rewrites replace the data file by rename, so the lock cannot live on the
data file itself: a writer blocked on the old inode would wake up holding
a lock nobody else checks.

Usage:
    with DBFile.open("/etc/passwd", Mode.APPEND) as db:
        for row in db.rows():
            ...
        db.append(user.to_row())
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .errors import EncodingError, NotFound

logger = logging.getLogger(__name__)

ENCODING = "utf-8"


class Mode(Enum):
    READ = "read"  # shared lock, scan only
    APPEND = "append"  # exclusive lock, scan and insert rows
    REWRITE = "rewrite"  # exclusive lock, scan and replace the whole file


class DBFile:
    """A database file held under its lock until ``close``."""

    def __init__(self, path: str | Path, mode: Mode) -> None:
        self.path = Path(path)
        self.mode = mode
        self._lock_fd: Optional[int] = None
        self._file: Optional[BinaryIO] = None
        self._pending: list[str] = []
        self._closed = False

    @classmethod
    @contextmanager
    def open(cls, path: str | Path, mode: Mode) -> Iterator[DBFile]:
        """Lock and open ``path`` for the duration of a ``with`` block.

        The lock is released on every exit path. If the block raises, rows
        queued with ``append`` are dropped; if closing fails as well, the
        close error is logged and the block's error is the one that
        propagates.
        """
        db = cls(path, mode)
        db._lock()
        try:
            db._open_data()
        except BaseException:
            db._unlock()
            raise

        try:
            yield db
        except BaseException:
            db._pending.clear()
            try:
                db.close()
            except OSError as e:
                logger.error(f"Error closing {db.path} after a failed operation: {e}")
            raise
        db.close()

    @property
    def lock_path(self) -> Path:
        # passwd(5) tools own "<file>.lock" and treat an empty one as stale
        return self.path.with_name(f".{self.path.name}.acctdb.lock")

    def _lock(self) -> None:
        exclusive = self.mode is not Mode.READ
        flags = os.O_CREAT | (os.O_RDWR if exclusive else os.O_RDONLY)
        try:
            self._lock_fd = os.open(self.lock_path, flags, 0o644)
        except PermissionError:
            if exclusive:
                raise
            # Nobody able to write this directory has locked it yet.
            logger.debug(f"Cannot create {self.lock_path}, reading {self.path} unlocked")
            return

        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
        except BaseException:
            os.close(self._lock_fd)
            self._lock_fd = None
            raise
        logger.debug(f"Locked {self.path} ({self.mode.value})")

    def _unlock(self) -> None:
        if self._lock_fd is None:
            return
        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        finally:
            os.close(self._lock_fd)
            self._lock_fd = None
            logger.debug(f"Unlocked {self.path}")

    def _open_data(self) -> None:
        if self.mode is Mode.APPEND:
            self._file = open(self.path, "a+b")
        elif self.path.exists():
            self._file = open(self.path, "rb")

    def rows(self) -> Iterator[str]:
        """Yield every non-blank row in file order, without its newline."""
        if self._file is None:
            return
        self._file.seek(0)
        for line_number, line in enumerate(self._file, start=1):
            try:
                row = line.decode(ENCODING).rstrip("\n")
            except UnicodeDecodeError as e:
                raise EncodingError(str(self.path), line_number, e.reason) from e
            if row:
                yield row

    def append(self, row: str) -> None:
        """Queue ``row`` to be written at the end of the file on close."""
        if self.mode is not Mode.APPEND:
            raise ValueError(f"{self.path} is not open for appending")
        self._pending.append(row if row.endswith("\n") else row + "\n")

    def remove(self, name: str) -> int:
        """Drop every row whose first field is ``name``.

        Returns:
            Number of rows removed.

        Raises:
            NotFound: no row has that name; the file is left untouched.
        """
        return self._rewrite(name, None)

    def replace(self, name: str, row: str) -> int:
        """Swap every row whose first field is ``name`` for ``row``."""
        return self._rewrite(name, row if row.endswith("\n") else row + "\n")

    def _rewrite(self, name: str, replacement: Optional[str]) -> int:
        if self.mode is not Mode.REWRITE:
            raise ValueError(f"{self.path} is not open for rewriting")

        lines: list[str] = []
        changed = 0
        for row in self.rows():
            if row.split(":", 1)[0] == name:
                changed += 1
                if replacement is not None:
                    lines.append(replacement)
                continue
            lines.append(row + "\n")

        if not changed:
            raise NotFound(f"no entry named {name!r} in {self.path}")

        self._write_replacement(lines)
        logger.debug(f"Rewrote {self.path}: {changed} row(s) for {name!r}")
        return changed

    def _write_replacement(self, lines: list[str]) -> None:
        # The temporary file must be on the same filesystem for rename to be atomic.
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write("".join(lines).encode(ENCODING))
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_path, self.path.stat().st_mode & 0o7777)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def _flush_pending(self) -> None:
        if not self._pending or self._file is None:
            return
        self._file.seek(0, os.SEEK_END)
        if self._file.tell() > 0:
            self._file.seek(-1, os.SEEK_END)
            if self._file.read(1) != b"\n":
                self._file.write(b"\n")
        self._file.write("".join(self._pending).encode(ENCODING))
        self._file.flush()
        os.fsync(self._file.fileno())
        self._pending.clear()

    def close(self) -> None:
        """Write queued rows, close the file and release the lock."""
        if self._closed:
            return
        self._closed = True
        try:
            try:
                self._flush_pending()
            finally:
                if self._file is not None:
                    self._file.close()
        finally:
            self._unlock()
