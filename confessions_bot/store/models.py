"""Confession record dataclass and its table-row encoding.

WHY: The workflow reasons about typed records (id, text, approval state,
message timestamps, identity digest) rather than loose dicts returned by
the table API.

HOW: ConfessionRecord maps 1:1 to a row of the confessions table.
from_row() parses a row as returned by the table service.

RULES:
- id is the table's autonumber; record_key is the service's row key
- The table service omits false booleans and empty cells: decode them
  as False / None
- published_ts is set if and only if approved is True
- text, uid_salt and uid_hash never change after creation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Column names in the confessions table
FIELD_ID = "id"
FIELD_TEXT = "text"
FIELD_APPROVED = "approved"
FIELD_VIEWED = "viewed"
FIELD_STAGING_TS = "staging_ts"
FIELD_PUBLISHED_TS = "published_ts"
FIELD_UID_SALT = "uid_salt"
FIELD_UID_HASH = "uid_hash"

# Columns callers may change after creation
MUTABLE_FIELDS = frozenset({FIELD_APPROVED, FIELD_VIEWED, FIELD_STAGING_TS, FIELD_PUBLISHED_TS})


@dataclass
class ConfessionRecord:
    """One submitted confession and its moderation state.

    RULES:
    - approved: False until a moderator approves; never changed afterwards
    - viewed: False until a moderation decision is recorded
    - staging_ts: ts of the staging-channel message, the correlation key
      for button clicks; None only between creation and staging
    - published_ts: ts of the public message, None unless approved
    """

    id: int
    record_key: str
    text: str
    uid_salt: str
    uid_hash: str
    approved: bool = False
    viewed: bool = False
    staging_ts: Optional[str] = None
    published_ts: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> ConfessionRecord:
        """Parse a ``{"id": "rec…", "fields": {...}}`` row.

        Raises KeyError if a column that is always present is missing.
        """
        fields = row.get("fields", {})
        return cls(
            id=int(fields[FIELD_ID]),
            record_key=row["id"],
            text=fields.get(FIELD_TEXT, ""),
            uid_salt=fields[FIELD_UID_SALT],
            uid_hash=fields[FIELD_UID_HASH],
            approved=bool(fields.get(FIELD_APPROVED, False)),
            viewed=bool(fields.get(FIELD_VIEWED, False)),
            staging_ts=fields.get(FIELD_STAGING_TS) or None,
            published_ts=fields.get(FIELD_PUBLISHED_TS) or None,
        )
