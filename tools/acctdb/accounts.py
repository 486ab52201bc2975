"""Flat-file account store with a parallel credential store.

Usage:
    from acctdb.accounts import AccountDB
    from acctdb.config import AccountsConfig
    from acctdb.record import User

    db = AccountDB(AccountsConfig(passwd_file="passwd", shadow_file="shadow"))
    uid = db.add(User.new("owl", db.config))
    db.lookup_uid(uid).name  # "owl"
    db.remove("owl")
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional

from . import crypt
from .config import AccountsConfig
from .dbfile import DBFile, Mode
from .errors import AccountDBError, Exists, HomeConflict, IdInUse, NotFound, RequiredField
from .idalloc import next_id
from .query import FieldSelector, R, ShadowField, UserField, lookup_many, scan
from .record import SHADOWED_PASSWORD, Shadow, User, days_since_epoch

logger = logging.getLogger(__name__)


def _has_match(kind: type[R], rows: Iterable[str], selector: FieldSelector, filename: str) -> bool:
    try:
        scan(kind, rows, selector, 1, filename)
    except NotFound:
        return False
    return True


class AccountDB:
    """Account and credential files of one system.

    Args:
        config: Settings shared by every operation.
        passwd_path: Account store. Defaults to ``config.passwd_file``.
        shadow_path: Credential store. Defaults to ``config.shadow_file``.
    """

    def __init__(
        self,
        config: AccountsConfig,
        passwd_path: Optional[str | Path] = None,
        shadow_path: Optional[str | Path] = None,
    ) -> None:
        self.config = config
        self.passwd_path = Path(passwd_path or config.passwd_file)
        self.shadow_path = Path(shadow_path or config.shadow_file)

    def _classify(self, user: User) -> User:
        return replace(user, is_system=user.uid in self.config.system_uid_range)

    # == Lookup

    def lookup_in_user(self, selector: FieldSelector, limit: int = -1) -> list[User]:
        """Look up accounts matching ``selector``.

        The limit decides how many records come back:
            n > 0: at most n
            n == 0: none, the file is not read
            n < 0: all of them
        """
        found = lookup_many(self.passwd_path, User, selector, limit)
        return [self._classify(u) for u in found]

    def lookup_uid(self, uid: int) -> User:
        """Look up an account by user ID."""
        return self.lookup_in_user(FieldSelector.number(UserField.UID, uid), 1)[0]

    def lookup_user(self, name: str) -> User:
        """Look up an account by name."""
        return self.lookup_in_user(FieldSelector.text(UserField.NAME, name), 1)[0]

    def list_users(self) -> list[User]:
        """Every account in file order."""
        try:
            return self.lookup_in_user(FieldSelector.all(User))
        except NotFound:
            return []

    def lookup_in_shadow(self, selector: FieldSelector, limit: int = -1) -> list[Shadow]:
        return lookup_many(self.shadow_path, Shadow, selector, limit)

    def lookup_shadow(self, name: str) -> Shadow:
        """Look up the credential entry of ``name``."""
        return self.lookup_in_shadow(FieldSelector.text(ShadowField.NAME, name), 1)[0]

    def next_uid(self, is_system: bool = False) -> int:
        """The identifier ``add`` would pick right now.

        The result is advisory: another process may take it before you use it.
        """
        with DBFile.open(self.passwd_path, Mode.READ) as db:
            return next_id(db, self.config, is_system)

    def current_username(self) -> str:
        """Name of the account running this process.

        A process that cannot find its own account cannot go on, so any
        failure here exits instead of raising to the caller.
        """
        uid = os.getuid()
        try:
            return self.lookup_uid(uid).name
        except (AccountDBError, OSError) as e:
            logger.critical(f"Cannot resolve account of uid {uid} in {self.passwd_path}: {e}")
            raise SystemExit(1) from e

    # == Add

    def add(self, user: User) -> int:
        """Add a new account and return its user ID.

        When ``user.uid`` is negative the lowest free identifier of the
        system or normal range is used. The password field is always stored
        as ``x``; set the credential with ``add_shadow``/``set_password``.

        Raises:
            RequiredField: name, home directory or shell is empty.
            HomeConflict: the home directory is the home root itself.
            Exists: the name is taken.
            IdInUse: the explicit user ID is taken.
            RangeExhausted: no identifier left to allocate.
        """
        if not user.name:
            raise RequiredField("Name")
        if not user.dir:
            raise RequiredField("Dir")
        if not user.shell:
            raise RequiredField("Shell")
        if user.dir == self.config.home:
            raise HomeConflict(self.config.home)

        filename = str(self.passwd_path)
        with DBFile.open(self.passwd_path, Mode.APPEND) as db:
            if _has_match(User, db.rows(), FieldSelector.text(UserField.NAME, user.name), filename):
                raise Exists(user.name)

            if user.uid >= 0:
                if _has_match(User, db.rows(), FieldSelector.number(UserField.UID, user.uid), filename):
                    raise IdInUse(user.uid)
                uid = user.uid
            else:
                uid = next_id(db, self.config, user.is_system)

            stored = replace(user, uid=uid, password=SHADOWED_PASSWORD)
            db.append(stored.to_row())

        logger.info(f"Added user {user.name!r} (uid {uid}) to {self.passwd_path}")
        return uid

    def add_shadow(self, shadow: Shadow) -> None:
        """Add the credential entry of an account.

        Raises:
            RequiredField: the name is empty.
            Exists: the name already has an entry.
        """
        if not shadow.name:
            raise RequiredField("Name")

        with DBFile.open(self.shadow_path, Mode.APPEND) as db:
            selector = FieldSelector.text(ShadowField.NAME, shadow.name)
            if _has_match(Shadow, db.rows(), selector, str(self.shadow_path)):
                raise Exists(shadow.name)
            db.append(shadow.to_row())

        logger.info(f"Added credential entry for {shadow.name!r} to {self.shadow_path}")

    def set_password(self, name: str, password: str) -> None:
        """Hash ``password`` and store it in the credential entry of ``name``.

        Raises:
            NotFound: ``name`` has no credential entry.
        """
        hashed = crypt.hash_password(password, self.config.bcrypt_rounds)

        with DBFile.open(self.shadow_path, Mode.REWRITE) as db:
            selector = FieldSelector.text(ShadowField.NAME, name)
            current = scan(Shadow, db.rows(), selector, 1, str(self.shadow_path))[0]
            updated = replace(current, password=hashed, changed=days_since_epoch())
            db.replace(name, updated.to_row())

        logger.info(f"Changed password of {name!r}")

    def check_password(self, name: str, password: str) -> bool:
        """Check a plaintext password against the stored hash."""
        try:
            hashed: Optional[str] = self.lookup_shadow(name).password
        except NotFound:
            hashed = None
        return crypt.check_password(password, hashed, self.config.bcrypt_rounds)

    # == Remove

    def remove(self, name: str) -> None:
        """Remove an account, then its credential entry.

        The two files are locked one after the other, not together. If the
        second step fails the account is already gone and its credential
        entry stays behind; the error is raised all the same.
        """
        with DBFile.open(self.passwd_path, Mode.REWRITE) as db:
            db.remove(name)
        logger.info(f"Removed user {name!r} from {self.passwd_path}")

        try:
            with DBFile.open(self.shadow_path, Mode.REWRITE) as db:
                db.remove(name)
        except (AccountDBError, OSError) as e:
            logger.warning(f"User {name!r} removed but its credential entry was not: {e}")
            raise
        logger.info(f"Removed credential entry of {name!r} from {self.shadow_path}")
