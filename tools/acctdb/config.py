"""Configuration for the account database.

The hosting application builds one ``AccountsConfig`` (directly or with
``load_config``) and passes it to every ``AccountDB`` it creates. The value
is frozen; nothing in the package keeps configuration in module state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from .errors import ConfigError

logger = logging.getLogger(__name__)

_ID_RANGE_SCHEMA = {
    "type": "array",
    "items": {"type": "integer", "minimum": 0},
    "minItems": 2,
    "maxItems": 2,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "passwd_file": {"type": "string", "minLength": 1},
        "shadow_file": {"type": "string", "minLength": 1},
        "home": {"type": "string", "minLength": 1},
        "shell": {"type": "string", "minLength": 1},
        "default_gid": {"type": "integer", "minimum": 0},
        "system_uid_range": _ID_RANGE_SCHEMA,
        "uid_range": _ID_RANGE_SCHEMA,
        "pass_min_days": {"type": "integer", "minimum": 0},
        "pass_max_days": {"type": "integer", "minimum": 0},
        "pass_warn_age": {"type": "integer", "minimum": 0},
        "bcrypt_rounds": {"type": "integer", "minimum": 4, "maximum": 31},
    },
    "additionalProperties": False,
}


@dataclass(frozen=True)
class IdRange:
    """Inclusive range of numeric identifiers."""

    low: int
    high: int

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ConfigError(f"invalid identifier range [{self.low}, {self.high}]")

    def __contains__(self, value: int) -> bool:
        return self.low <= value <= self.high

    def overlaps(self, other: IdRange) -> bool:
        return self.low <= other.high and other.low <= self.high


@dataclass(frozen=True)
class AccountsConfig:
    """Read-only settings shared by every database operation.

    Attributes:
        passwd_file: Path of the account store.
        shadow_file: Path of the credential store.
        home: Home directory root; new users get ``home/<name>``.
        shell: Login shell given to new users.
        default_gid: Primary group of new users.
        system_uid_range: Identifiers handed out to system accounts.
        uid_range: Identifiers handed out to normal accounts.
        pass_min_days: Default ``min`` field of new credential rows.
        pass_max_days: Default ``max`` field of new credential rows.
        pass_warn_age: Default ``warn`` field of new credential rows.
        bcrypt_rounds: Cost factor passed to bcrypt when hashing passwords.
    """

    passwd_file: str = "/etc/passwd"
    shadow_file: str = "/etc/shadow"
    home: str = "/home"
    shell: str = "/bin/sh"
    default_gid: int = 100
    system_uid_range: IdRange = field(default_factory=lambda: IdRange(100, 999))
    uid_range: IdRange = field(default_factory=lambda: IdRange(1000, 60000))
    pass_min_days: int = 0
    pass_max_days: int = 99999
    pass_warn_age: int = 7
    bcrypt_rounds: int = 12

    def __post_init__(self) -> None:
        if self.system_uid_range.overlaps(self.uid_range):
            raise ConfigError(
                f"system range {self.system_uid_range} overlaps normal range {self.uid_range}"
            )

    def id_range(self, is_system: bool) -> IdRange:
        return self.system_uid_range if is_system else self.uid_range

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountsConfig:
        """Build a config from a JSON-like mapping, validating it first."""
        try:
            jsonschema.validate(data, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigError(f"invalid configuration: {e.message}") from e

        values = dict(data)
        for key in ("system_uid_range", "uid_range"):
            if key in values:
                low, high = values[key]
                values[key] = IdRange(low, high)
        return cls(**values)


def load_config(config_path: str | Path) -> AccountsConfig:
    """Load configuration from a JSON file."""
    path = Path(config_path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config not found at {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"config at {path} is not valid JSON: {e}") from e

    config = AccountsConfig.from_dict(data)
    logger.debug(f"Loaded configuration from {path}")
    return config
