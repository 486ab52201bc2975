"""Pick the lowest free identifier of an account class.

``next_id`` works on a ``DBFile`` the caller already holds. When that file
is open in APPEND mode the pick and the following append run under the same
exclusive lock, so two concurrent additions cannot both see an identifier
as free.
"""

from __future__ import annotations

import logging

from .config import AccountsConfig
from .dbfile import DBFile
from .errors import RangeExhausted
from .record import User

logger = logging.getLogger(__name__)


def used_ids(db: DBFile) -> set[int]:
    """Identifiers of every row in ``db``; corrupt rows raise as in lookups."""
    return {User.parse(row, str(db.path)).uid for row in db.rows()}


def next_id(db: DBFile, config: AccountsConfig, is_system: bool) -> int:
    """Return the lowest unused identifier in the range for ``is_system``.

    Raises:
        RangeExhausted: every identifier of the range is taken.
    """
    id_range = config.id_range(is_system)
    taken = used_ids(db)
    for candidate in range(id_range.low, id_range.high + 1):
        if candidate not in taken:
            logger.debug(f"Next free id in [{id_range.low}, {id_range.high}]: {candidate}")
            return candidate
    raise RangeExhausted(id_range.low, id_range.high)
