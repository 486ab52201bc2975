"""Field-mask queries over account and credential rows.

A query is a ``FieldSelector``: a mask of field flags plus one typed value.
The value is either ``Text`` or ``Number``; a text value never matches a
numeric field and a number never matches a text field.

Every candidate row is parsed in full before it is compared, so a row with
a corrupt numeric field fails the whole lookup with ``FieldTypeError`` even
when only a text field was asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Flag, auto
from pathlib import Path
from typing import ClassVar, Iterable, Iterator, Optional, Protocol, TypeVar, Union

from .dbfile import DBFile, Mode
from .errors import NotFound

logger = logging.getLogger(__name__)


class UserField(Flag):
    """Selectable fields of the account store."""

    NAME = auto()
    PASSWD = auto()
    UID = auto()
    GID = auto()
    GECOS = auto()
    DIR = auto()
    SHELL = auto()

    ALL = auto()  # match every row without looking at a field


class ShadowField(Flag):
    """Selectable fields of the credential store."""

    NAME = auto()
    PASSWD = auto()
    CHANGED = auto()
    MIN = auto()
    MAX = auto()
    WARN = auto()
    INACTIVE = auto()
    EXPIRE = auto()
    FLAG = auto()

    ALL = auto()


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: int


Value = Union[Text, Number]


@dataclass(frozen=True)
class FieldSelector:
    """Which fields to compare, and the value to compare them with."""

    mask: Flag
    value: Optional[Value] = None

    @classmethod
    def text(cls, mask: Flag, value: str) -> FieldSelector:
        return cls(mask, Text(value))

    @classmethod
    def number(cls, mask: Flag, value: int) -> FieldSelector:
        return cls(mask, Number(value))

    @classmethod
    def all(cls, kind: type[Record]) -> FieldSelector:
        return cls(kind.FIELDS.ALL)


class Record(Protocol):
    """What the query engine needs from a record type."""

    FIELDS: ClassVar[type[Flag]]
    WIDTH: ClassVar[int]
    FILENAME: ClassVar[str]
    name: str

    @classmethod
    def parse(cls, row: str, filename: str = ...) -> Record: ...

    def to_row(self) -> str: ...

    def selectable_fields(self) -> Iterator[tuple[Flag, Optional[Value]]]: ...


R = TypeVar("R", bound=Record)


def _same_value(stored: Optional[Value], wanted: Optional[Value]) -> bool:
    match stored, wanted:
        case Text(a), Text(b):
            return a == b
        case Number(a), Number(b):
            return a == b
        case _:
            return False


def matches(record: Record, selector: FieldSelector) -> bool:
    """Report whether an already parsed record satisfies the selector.

    Fields are tried in their declaration order, ALL last.

    Raises:
        TypeError: the selector's mask belongs to another record type.
    """
    if not isinstance(selector.mask, record.FIELDS):
        raise TypeError(
            f"{type(selector.mask).__name__} selector cannot query {type(record).__name__} rows"
        )
    for flag, stored in record.selectable_fields():
        if selector.mask & flag and _same_value(stored, selector.value):
            return True
    return bool(selector.mask & record.FIELDS.ALL)


def match_row(kind: type[R], row: str, selector: FieldSelector, filename: str = "") -> Optional[R]:
    """Parse ``row`` and return the record if it satisfies the selector.

    Raises:
        MalformedRow: wrong number of fields.
        FieldTypeError: a numeric field is not an integer, whatever the mask.
    """
    record = kind.parse(row, filename or kind.FILENAME)
    if matches(record, selector):
        return record
    return None


def scan(
    kind: type[R],
    rows: Iterable[str],
    selector: FieldSelector,
    limit: int,
    filename: str = "",
) -> list[R]:
    """Collect the rows matching ``selector`` in file order.

    Args:
        kind: Record class used to parse each row.
        rows: Rows without their line terminator.
        selector: Fields and value to look for.
        limit: ``n > 0`` returns at most n records, ``0`` returns nothing
            without reading ``rows``, ``n < 0`` returns every match.
        filename: Reported in parse errors.

    Raises:
        NotFound: nothing matched and ``limit`` is not zero.
    """
    if limit == 0:
        return []

    found: list[R] = []
    for row in rows:
        record = match_row(kind, row, selector, filename)
        if record is None:
            continue
        found.append(record)
        if len(found) == limit:
            break

    if not found:
        raise NotFound(f"no entry in {filename or kind.__name__} matching {selector.mask}")
    return found


def lookup_many(
    path: str | Path, kind: type[R], selector: FieldSelector, limit: int
) -> list[R]:
    """Open ``path`` for reading and run ``scan`` over it.

    With ``limit == 0`` the file is not opened at all.
    """
    if limit == 0:
        return []

    with DBFile.open(path, Mode.READ) as db:
        found = scan(kind, db.rows(), selector, limit, str(db.path))
    logger.debug(f"Lookup {selector.mask} in {path}: {len(found)} match(es)")
    return found
