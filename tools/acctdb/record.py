"""Account and credential records and their exact row format.

An account row has seven fields (passwd(5))::

    name:password:uid:gid:gecos:dir:shell

A credential row has nine fields (shadow(5))::

    name:password:changed:min:max:warn:inactive:expire:flag

Fields are joined by ``:`` without any escaping, so a field holding the
delimiter cannot be stored.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, ClassVar, Iterator, Optional

from .errors import FieldTypeError, MalformedRow
from .query import Number, ShadowField, Text, UserField

if TYPE_CHECKING:
    from .config import AccountsConfig

DELIMITER = ":"

# Stored in the account file: the real hash lives in the credential file.
SHADOWED_PASSWORD = "x"
# Stored in the credential file until a password is set.
LOCKED_PASSWORD = "!"


def _split(row: str, width: int) -> list[str]:
    row = row.removesuffix("\n")
    fields = row.split(DELIMITER)
    if len(fields) != width:
        raise MalformedRow(row, width)
    return fields


def _join(fields: list[str], width: int) -> str:
    for value in fields:
        if DELIMITER in value or "\n" in value:
            raise MalformedRow(DELIMITER.join(fields), width)
    return DELIMITER.join(fields) + "\n"


def _to_int(value: str, filename: str, row: str, name: str) -> int:
    # int() would also take " 1" and "1_000"
    digits = value[1:] if value[:1] in ("-", "+") else value
    if not digits.isascii() or not digits.isdigit():
        raise FieldTypeError(filename, row.removesuffix("\n"), name)
    return int(value)


def _to_optional_int(value: str, filename: str, row: str, name: str) -> Optional[int]:
    if value == "":
        return None
    return _to_int(value, filename, row, name)


def _from_optional_int(value: Optional[int]) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class User:
    """A user account.

    ``password`` is either an opaque hash or ``SHADOWED_PASSWORD``; it is
    never a cleartext secret. ``uid == -1`` asks ``AccountDB.add`` to pick
    an identifier. ``is_system`` is derived from the identifier range and
    is not written to the file.
    """

    FIELDS: ClassVar[type[UserField]] = UserField
    WIDTH: ClassVar[int] = 7
    FILENAME: ClassVar[str] = "/etc/passwd"

    name: str
    password: str = ""
    uid: int = -1
    gid: int = 0
    gecos: str = ""
    dir: str = ""
    shell: str = ""
    is_system: bool = field(default=False, compare=False)

    @classmethod
    def new(cls, name: str, config: AccountsConfig) -> User:
        """A normal user with home directory and shell taken from ``config``."""
        return cls(
            name=name,
            dir=posixpath.join(config.home, name),
            shell=config.shell,
            gid=config.default_gid,
        )

    @classmethod
    def new_system(cls, name: str, home_dir: str, gid: int) -> User:
        return cls(name=name, dir=home_dir, shell="/bin/false", gid=gid, is_system=True)

    @classmethod
    def parse(cls, row: str, filename: str = FILENAME) -> User:
        """Parse one account row.

        Raises:
            MalformedRow: the row does not have seven fields.
            FieldTypeError: UID or GID is not a base-10 integer.
        """
        fields = _split(row, cls.WIDTH)
        uid = _to_int(fields[2], filename, row, "UID")
        gid = _to_int(fields[3], filename, row, "GID")
        return cls(
            name=fields[0],
            password=fields[1],
            uid=uid,
            gid=gid,
            gecos=fields[4],
            dir=fields[5],
            shell=fields[6],
        )

    def to_row(self) -> str:
        """Serialize to a newline-terminated row."""
        return _join(
            [self.name, self.password, str(self.uid), str(self.gid), self.gecos, self.dir, self.shell],
            self.WIDTH,
        )

    def selectable_fields(self) -> Iterator[tuple[UserField, Text | Number]]:
        yield UserField.NAME, Text(self.name)
        yield UserField.PASSWD, Text(self.password)
        yield UserField.UID, Number(self.uid)
        yield UserField.GID, Number(self.gid)
        yield UserField.GECOS, Text(self.gecos)
        yield UserField.DIR, Text(self.dir)
        yield UserField.SHELL, Text(self.shell)

    def __str__(self):
        return self.to_row().removesuffix("\n")


@dataclass(frozen=True)
class Shadow:
    """The credential entry of a user.

    Day counts are days since 1970-01-01; ``None`` is an empty field.
    """

    FIELDS: ClassVar[type[ShadowField]] = ShadowField
    WIDTH: ClassVar[int] = 9
    FILENAME: ClassVar[str] = "/etc/shadow"

    name: str
    password: str = LOCKED_PASSWORD
    changed: Optional[int] = None
    min: Optional[int] = None
    max: Optional[int] = None
    warn: Optional[int] = None
    inactive: Optional[int] = None
    expire: Optional[int] = None
    flag: str = ""

    @classmethod
    def new(cls, name: str, config: AccountsConfig) -> Shadow:
        """A locked credential entry with the configured aging policy."""
        return cls(
            name=name,
            changed=days_since_epoch(),
            min=config.pass_min_days,
            max=config.pass_max_days,
            warn=config.pass_warn_age,
        )

    @classmethod
    def parse(cls, row: str, filename: str = FILENAME) -> Shadow:
        """Parse one credential row.

        Raises:
            MalformedRow: the row does not have nine fields.
            FieldTypeError: a non-empty day count is not a base-10 integer.
        """
        fields = _split(row, cls.WIDTH)
        return cls(
            name=fields[0],
            password=fields[1],
            changed=_to_optional_int(fields[2], filename, row, "changed"),
            min=_to_optional_int(fields[3], filename, row, "min"),
            max=_to_optional_int(fields[4], filename, row, "max"),
            warn=_to_optional_int(fields[5], filename, row, "warn"),
            inactive=_to_optional_int(fields[6], filename, row, "inactive"),
            expire=_to_optional_int(fields[7], filename, row, "expire"),
            flag=fields[8],
        )

    def to_row(self) -> str:
        return _join(
            [
                self.name,
                self.password,
                _from_optional_int(self.changed),
                _from_optional_int(self.min),
                _from_optional_int(self.max),
                _from_optional_int(self.warn),
                _from_optional_int(self.inactive),
                _from_optional_int(self.expire),
                self.flag,
            ],
            self.WIDTH,
        )

    def selectable_fields(self) -> Iterator[tuple[ShadowField, Optional[Text | Number]]]:
        yield ShadowField.NAME, Text(self.name)
        yield ShadowField.PASSWD, Text(self.password)
        for flag, value in (
            (ShadowField.CHANGED, self.changed),
            (ShadowField.MIN, self.min),
            (ShadowField.MAX, self.max),
            (ShadowField.WARN, self.warn),
            (ShadowField.INACTIVE, self.inactive),
            (ShadowField.EXPIRE, self.expire),
        ):
            yield flag, None if value is None else Number(value)
        yield ShadowField.FLAG, Text(self.flag)

    def __str__(self):
        return self.to_row().removesuffix("\n")


def days_since_epoch(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return (now - datetime(1970, 1, 1, tzinfo=timezone.utc)).days
