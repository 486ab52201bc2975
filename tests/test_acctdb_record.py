#!/usr/bin/env python3
"""Unit tests for account and credential row parsing."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from acctdb.config import AccountsConfig
from acctdb.errors import FieldTypeError, MalformedRow
from acctdb.record import LOCKED_PASSWORD, Shadow, User, days_since_epoch

ALICE_ROW = "alice:x:1000:1000:Alice:/home/alice:/bin/bash"


class TestUserParse:
    def test_parses_all_fields(self):
        user = User.parse(ALICE_ROW)
        assert user.name == "alice"
        assert user.password == "x"
        assert user.uid == 1000
        assert user.gid == 1000
        assert user.gecos == "Alice"
        assert user.dir == "/home/alice"
        assert user.shell == "/bin/bash"
        assert user.is_system is False

    def test_trailing_newline_is_ignored(self):
        assert User.parse(ALICE_ROW + "\n") == User.parse(ALICE_ROW)

    def test_empty_fields_are_kept(self):
        user = User.parse("nobody::65534:65534:::")
        assert user.password == ""
        assert user.gecos == ""
        assert user.shell == ""

    def test_three_fields_is_malformed(self):
        with pytest.raises(MalformedRow):
            User.parse("a:b:c")

    def test_eight_fields_is_malformed(self):
        with pytest.raises(MalformedRow):
            User.parse(ALICE_ROW + ":extra")

    def test_bad_uid_reports_field_and_file(self):
        with pytest.raises(FieldTypeError) as exc:
            User.parse("bob:x:abc:100:::", "/tmp/passwd")
        assert exc.value.field == "UID"
        assert exc.value.filename == "/tmp/passwd"
        assert exc.value.row == "bob:x:abc:100:::"

    def test_bad_gid_reports_field(self):
        with pytest.raises(FieldTypeError) as exc:
            User.parse("bob:x:1000::::")
        assert exc.value.field == "GID"

    @pytest.mark.parametrize("uid", [" 1", "1_000", "0x10", "-", "+"])
    def test_only_plain_decimal_integers(self, uid):
        with pytest.raises(FieldTypeError):
            User.parse(f"bob:x:{uid}:100:::")

    def test_negative_ids_parse(self):
        assert User.parse("bob:x:-1:-2:::").uid == -1

    def test_explicit_plus_sign_parses(self):
        user = User.parse("bob:x:+1:+100:::")
        assert (user.uid, user.gid) == (1, 100)


class TestUserSerialize:
    def test_row_is_newline_terminated(self):
        assert User.parse(ALICE_ROW).to_row() == ALICE_ROW + "\n"

    def test_str_has_no_newline(self):
        assert str(User.parse(ALICE_ROW)) == ALICE_ROW

    def test_round_trip(self):
        user = User(name="svc", password="", uid=0, gid=-5, gecos="Svc, Room 1", dir="/", shell="")
        assert User.parse(user.to_row()) == user

    def test_is_system_is_not_persisted(self):
        user = User.new_system("daemon", "/var/lib/daemon", 2)
        assert user.is_system is True
        assert User.parse(user.to_row()) == user
        assert User.parse(user.to_row()).is_system is False

    def test_delimiter_in_field_is_rejected(self):
        with pytest.raises(MalformedRow):
            User(name="bob", gecos="a:b", dir="/home/bob", shell="/bin/sh").to_row()

    def test_newline_in_field_is_rejected(self):
        with pytest.raises(MalformedRow):
            User(name="bob\nroot", dir="/home/bob", shell="/bin/sh").to_row()


class TestUserConstructors:
    def test_new_takes_defaults_from_config(self):
        config = AccountsConfig(home="/srv/home", shell="/bin/zsh", default_gid=50)
        user = User.new("owl", config)
        assert user.dir == "/srv/home/owl"
        assert user.shell == "/bin/zsh"
        assert user.gid == 50
        assert user.uid == -1

    def test_new_system(self):
        user = User.new_system("sshd", "/run/sshd", 65534)
        assert user.shell == "/bin/false"
        assert user.uid == -1
        assert user.gid == 65534


class TestShadow:
    def test_parses_empty_day_counts_as_none(self):
        shadow = Shadow.parse("alice:!:19000:0:99999:7:::")
        assert shadow.name == "alice"
        assert shadow.password == "!"
        assert shadow.changed == 19000
        assert shadow.min == 0
        assert shadow.max == 99999
        assert shadow.warn == 7
        assert shadow.inactive is None
        assert shadow.expire is None
        assert shadow.flag == ""

    def test_wrong_width_is_malformed(self):
        with pytest.raises(MalformedRow):
            Shadow.parse(ALICE_ROW)

    def test_bad_day_count(self):
        with pytest.raises(FieldTypeError) as exc:
            Shadow.parse("alice:!:soon:0:99999:7:::", "/tmp/shadow")
        assert exc.value.field == "changed"
        assert exc.value.filename == "/tmp/shadow"

    def test_round_trip(self):
        row = "alice:$2b$04$abcdefghijklmnopqrstuv:19000::::::\n"
        assert Shadow.parse(row).to_row() == row

    def test_new_uses_aging_policy(self):
        config = AccountsConfig(pass_min_days=1, pass_max_days=90, pass_warn_age=14)
        shadow = Shadow.new("owl", config)
        assert shadow.password == LOCKED_PASSWORD
        assert (shadow.min, shadow.max, shadow.warn) == (1, 90, 14)
        assert shadow.changed == days_since_epoch()


def test_days_since_epoch():
    assert days_since_epoch(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0
    assert days_since_epoch(datetime(1970, 1, 11, 23, 59, tzinfo=timezone.utc)) == 10
