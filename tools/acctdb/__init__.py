"""
acctdb: flat-file user account database.

Reads and writes a passwd(5) style account file and its shadow(5) style
credential file without any database engine underneath.

Components:
    - record: User and Shadow rows and their exact text format
    - query: field-mask selectors and row scans
    - dbfile: locked read, append and atomic rewrite of one file
    - idalloc: lowest free user ID inside a configured range
    - accounts: AccountDB, the lookup and Add/Remove surface

Usage:
    from acctdb import AccountDB, AccountsConfig, User

    config = AccountsConfig(passwd_file="passwd", shadow_file="shadow")
    db = AccountDB(config)
    uid = db.add(User.new("owl", config))
"""

__version__ = "0.1.0"

from .accounts import AccountDB
from .config import AccountsConfig, IdRange, load_config
from .errors import (
    AccountDBError,
    ConfigError,
    EncodingError,
    Exists,
    FieldTypeError,
    HomeConflict,
    IdInUse,
    MalformedRow,
    NotFound,
    RangeExhausted,
    RequiredField,
)
from .query import FieldSelector, ShadowField, UserField
from .record import Shadow, User

__all__ = [
    "AccountDB",
    "AccountsConfig",
    "IdRange",
    "load_config",
    "FieldSelector",
    "UserField",
    "ShadowField",
    "User",
    "Shadow",
    "AccountDBError",
    "ConfigError",
    "EncodingError",
    "Exists",
    "FieldTypeError",
    "HomeConflict",
    "IdInUse",
    "MalformedRow",
    "NotFound",
    "RangeExhausted",
    "RequiredField",
]
