"""Typed errors raised by the account database.

Every lookup and mutation error is an ``AccountDBError`` subclass so that a
hosting application can render them in one place. I/O and locking failures
are left as the ``OSError`` raised by the storage layer.
"""

from __future__ import annotations


class AccountDBError(Exception):
    """Base class for every account database error."""


class ConfigError(AccountDBError):
    """Configuration could not be loaded or is inconsistent."""


class MalformedRow(AccountDBError):
    """A row has the wrong number of fields or a field holds a delimiter."""

    def __init__(self, row: str, expected: int):
        super().__init__(f"format of row not valid (want {expected} fields): {row!r}")
        self.row = row
        self.expected = expected


class EncodingError(AccountDBError):
    """A line of a database file is not valid UTF-8."""

    def __init__(self, filename: str, line_number: int, reason: str):
        super().__init__(f"line {line_number} of {filename!r} is not valid UTF-8: {reason}")
        self.filename = filename
        self.line_number = line_number


class FieldTypeError(AccountDBError):
    """A numeric field could not be parsed as a base-10 integer."""

    def __init__(self, filename: str, row: str, field: str):
        super().__init__(f"field {field!r} in file {filename!r} is not an integer: {row!r}")
        self.filename = filename
        self.row = row
        self.field = field


class NotFound(AccountDBError):
    """A lookup found no matching row."""

    def __init__(self, message: str = "entry not found"):
        super().__init__(message)


class Exists(AccountDBError):
    """A row with the same name is already stored."""

    def __init__(self, name: str):
        super().__init__(f"entry already exists: {name!r}")
        self.name = name


class RequiredField(AccountDBError):
    """A mandatory field was left empty."""

    def __init__(self, field: str):
        super().__init__(f"field {field!r} is required")
        self.field = field


class HomeConflict(AccountDBError):
    """The home directory is the configured home root itself."""

    def __init__(self, home: str):
        super().__init__(f"home directory is the same as the home root: {home!r}")
        self.home = home


class IdInUse(AccountDBError):
    """An explicitly requested identifier is taken."""

    def __init__(self, uid: int):
        super().__init__(f"identifier {uid} is already used")
        self.uid = uid


class RangeExhausted(AccountDBError):
    """No free identifier remains in the allocation range."""

    def __init__(self, low: int, high: int):
        super().__init__(f"no free identifier in range [{low}, {high}]")
        self.low = low
        self.high = high
