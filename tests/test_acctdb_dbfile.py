#!/usr/bin/env python3
"""Unit tests for locked database file access."""

import os
import stat
import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from acctdb.dbfile import DBFile, Mode
from acctdb.errors import EncodingError, NotFound

ROWS = [
    "root:x:0:0:root:/root:/bin/bash",
    "alice:x:1000:1000:Alice:/home/alice:/bin/bash",
]


@pytest.fixture
def passwd(tmp_path):
    path = tmp_path / "passwd"
    path.write_text("\n".join(ROWS) + "\n")
    return path


class TestRead:
    def test_rows_in_order(self, passwd):
        with DBFile.open(passwd, Mode.READ) as db:
            assert list(db.rows()) == ROWS

    def test_rows_can_be_read_twice(self, passwd):
        with DBFile.open(passwd, Mode.READ) as db:
            assert list(db.rows()) == list(db.rows())

    def test_blank_lines_are_skipped(self, tmp_path):
        path = tmp_path / "passwd"
        path.write_text(ROWS[0] + "\n\n" + ROWS[1] + "\n\n")
        with DBFile.open(path, Mode.READ) as db:
            assert list(db.rows()) == ROWS

    def test_invalid_utf8_names_the_line(self, tmp_path):
        path = tmp_path / "passwd"
        path.write_bytes(b"root:x:0:0::/root:/bin/sh\n" b"alice:x:1000:1000:\xff:/home/alice:/bin/sh\n")
        with DBFile.open(path, Mode.READ) as db:
            with pytest.raises(EncodingError) as exc:
                list(db.rows())
        assert exc.value.line_number == 2
        assert "not valid UTF-8" in str(exc.value)

    def test_shadow_utils_lock_name_is_left_alone(self, passwd):
        with DBFile.open(passwd, Mode.APPEND) as db:
            db.append("bob:x:1001:1001:::")
        assert not passwd.with_name("passwd.lock").exists()
        assert passwd.with_name(".passwd.acctdb.lock").exists()

    def test_missing_file_reads_empty(self, tmp_path):
        with DBFile.open(tmp_path / "passwd", Mode.READ) as db:
            assert list(db.rows()) == []
        assert not (tmp_path / "passwd").exists()
        assert (tmp_path / ".passwd.acctdb.lock").exists()

    def test_append_refused(self, passwd):
        with DBFile.open(passwd, Mode.READ) as db:
            with pytest.raises(ValueError):
                db.append("bob:x:1001:1001:::\n")


class TestAppend:
    def test_rows_written_on_close(self, passwd):
        with DBFile.open(passwd, Mode.APPEND) as db:
            db.append("bob:x:1001:1001::/home/bob:/bin/sh")
            assert passwd.read_text().count("\n") == 2
        assert passwd.read_text().splitlines() == ROWS + ["bob:x:1001:1001::/home/bob:/bin/sh"]

    def test_creates_missing_file(self, tmp_path):
        path = tmp_path / "passwd"
        with DBFile.open(path, Mode.APPEND) as db:
            assert list(db.rows()) == []
            db.append(ROWS[0] + "\n")
        assert path.read_text() == ROWS[0] + "\n"

    def test_missing_final_newline_is_added(self, tmp_path):
        path = tmp_path / "passwd"
        path.write_text(ROWS[0])
        with DBFile.open(path, Mode.APPEND) as db:
            db.append(ROWS[1])
        assert path.read_text() == "\n".join(ROWS) + "\n"

    def test_nothing_written_when_body_fails(self, passwd):
        before = passwd.read_text()
        with pytest.raises(RuntimeError):
            with DBFile.open(passwd, Mode.APPEND) as db:
                db.append("bob:x:1001:1001:::")
                raise RuntimeError("boom")
        assert passwd.read_text() == before


class TestRewrite:
    def test_remove_row(self, passwd):
        with DBFile.open(passwd, Mode.REWRITE) as db:
            assert db.remove("alice") == 1
        assert passwd.read_text() == ROWS[0] + "\n"

    def test_remove_matches_whole_name(self, passwd):
        with DBFile.open(passwd, Mode.REWRITE) as db:
            with pytest.raises(NotFound):
                db.remove("ali")
        assert passwd.read_text().splitlines() == ROWS

    def test_missing_name_leaves_file_untouched(self, passwd):
        inode = passwd.stat().st_ino
        with pytest.raises(NotFound):
            with DBFile.open(passwd, Mode.REWRITE) as db:
                db.remove("mallory")
        assert passwd.stat().st_ino == inode

    def test_missing_file_is_not_found(self, tmp_path):
        with pytest.raises(NotFound):
            with DBFile.open(tmp_path / "shadow", Mode.REWRITE) as db:
                db.remove("alice")

    def test_replace_row(self, passwd):
        new_row = "alice:x:1000:1000:Alice A.:/home/alice:/bin/zsh"
        with DBFile.open(passwd, Mode.REWRITE) as db:
            db.replace("alice", new_row)
        assert passwd.read_text().splitlines() == [ROWS[0], new_row]

    def test_permissions_are_kept(self, passwd):
        os.chmod(passwd, 0o640)
        with DBFile.open(passwd, Mode.REWRITE) as db:
            db.remove("root")
        assert stat.S_IMODE(passwd.stat().st_mode) == 0o640

    def test_no_temporary_files_left(self, passwd):
        with DBFile.open(passwd, Mode.REWRITE) as db:
            db.remove("root")
        assert sorted(p.name for p in passwd.parent.iterdir()) == [".passwd.acctdb.lock", "passwd"]

    def test_failed_rename_keeps_original(self, passwd, monkeypatch):
        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", fail_replace)
        with pytest.raises(OSError, match="disk full"):
            with DBFile.open(passwd, Mode.REWRITE) as db:
                db.remove("root")
        assert passwd.read_text().splitlines() == ROWS
        assert sorted(p.name for p in passwd.parent.iterdir()) == [".passwd.acctdb.lock", "passwd"]

    def test_append_refused(self, passwd):
        with DBFile.open(passwd, Mode.REWRITE) as db:
            with pytest.raises(ValueError):
                db.append(ROWS[0])


class TestClose:
    def test_close_error_does_not_mask_body_error(self, passwd, monkeypatch):
        def fail_flush(self):
            raise OSError("flush failed")

        monkeypatch.setattr(DBFile, "_flush_pending", fail_flush)
        with pytest.raises(RuntimeError, match="body failed"):
            with DBFile.open(passwd, Mode.APPEND) as db:
                raise RuntimeError("body failed")
        assert db._lock_fd is None

    def test_close_error_raised_when_body_succeeds(self, passwd, monkeypatch):
        def fail_flush(self):
            raise OSError("flush failed")

        monkeypatch.setattr(DBFile, "_flush_pending", fail_flush)
        with pytest.raises(OSError, match="flush failed"):
            with DBFile.open(passwd, Mode.APPEND) as db:
                db.append(ROWS[0])
        assert db._lock_fd is None

    def test_close_is_idempotent(self, passwd):
        with DBFile.open(passwd, Mode.READ) as db:
            pass
        db.close()


class TestLocking:
    def test_exclusive_lock_blocks_readers(self, passwd):
        acquired = threading.Event()

        def reader():
            with DBFile.open(passwd, Mode.READ):
                acquired.set()

        with DBFile.open(passwd, Mode.APPEND):
            thread = threading.Thread(target=reader)
            thread.start()
            assert not acquired.wait(0.3)

        assert acquired.wait(5)
        thread.join(5)

    def test_shared_locks_coexist(self, passwd):
        acquired = threading.Event()

        def reader():
            with DBFile.open(passwd, Mode.READ):
                acquired.set()

        with DBFile.open(passwd, Mode.READ):
            thread = threading.Thread(target=reader)
            thread.start()
            assert acquired.wait(5)
        thread.join(5)
