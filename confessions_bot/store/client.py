"""Record store contract and its Airtable-backed implementation.

WHY: Confession records live in an external, row-oriented table. The
moderation workflow should only see a narrow create/find/update/delete
contract so the backing service can be swapped (or faked in tests), and
so a conditional update can later be added without touching callers.

HOW: RecordStore is an abstract base class of async operations.
AirtableRecordStore implements it over the Airtable REST API with
httpx.AsyncClient, used as an async context manager like the other HTTP
clients in this package.

RULES:
- Always use the async context manager: async with AirtableRecordStore(...) as store
- create_record generates a fresh salt per record and stores only the digest,
  hashing in a worker thread
- find_by_staging_ts returns 0 or 1 records; more raises StoreConsistencyError
- Transport/HTTP failures on reads raise StoreReadError, on writes StoreWriteError
- No retries; every failure is surfaced to the caller
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from confessions_bot.config import Settings
from confessions_bot.errors import StoreConsistencyError, StoreReadError, StoreWriteError
from confessions_bot.security.identity import hash_user, new_salt
from confessions_bot.store.models import (
    FIELD_APPROVED,
    FIELD_ID,
    FIELD_STAGING_TS,
    FIELD_TEXT,
    FIELD_UID_HASH,
    FIELD_UID_SALT,
    MUTABLE_FIELDS,
    ConfessionRecord,
)

logger = logging.getLogger(__name__)


class RecordStore(abc.ABC):
    """Async CRUD contract for confession records.

    Stores are async context managers; the default enter/exit do nothing.
    """

    async def __aenter__(self) -> RecordStore:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        return None

    @abc.abstractmethod
    async def create_record(self, text: str, uid: str) -> ConfessionRecord:
        """Insert an unapproved record for ``text`` submitted by ``uid``."""

    @abc.abstractmethod
    async def find_by_staging_ts(self, staging_ts: str) -> Optional[ConfessionRecord]:
        """Return the record staged as ``staging_ts``, or None."""

    @abc.abstractmethod
    async def get_record(self, record_id: int) -> Optional[ConfessionRecord]:
        """Return the record with confession number ``record_id``, or None."""

    @abc.abstractmethod
    async def update_record(
        self, record: ConfessionRecord, fields: Dict[str, Any]
    ) -> ConfessionRecord:
        """Apply a partial update and return the updated record."""

    @abc.abstractmethod
    async def delete_record(self, record: ConfessionRecord) -> None:
        """Remove a record. Only used to roll back a failed staging."""


def check_mutable_fields(fields: Dict[str, Any]) -> None:
    """Raise ValueError if ``fields`` touches a column that is set once at creation."""
    immutable = set(fields) - MUTABLE_FIELDS
    if immutable:
        raise ValueError(
            "Cannot update immutable fields: {}".format(", ".join(sorted(immutable)))
        )


def _formula_literal(value: str) -> str:
    """Quote ``value`` as an Airtable formula string literal."""
    return "'{}'".format(value.replace("\\", "\\\\").replace("'", "\\'"))


def _single(records: List[ConfessionRecord], what: str) -> Optional[ConfessionRecord]:
    if len(records) > 1:
        raise StoreConsistencyError(
            "Failed to find single record with {}, got {}".format(what, len(records))
        )
    return records[0] if records else None


class AirtableRecordStore(RecordStore):
    """Record store backed by one Airtable table.

    WHY: The confessions table is an Airtable base so moderators can browse
    history without a custom UI.

    HOW: Wraps httpx.AsyncClient with Bearer auth against
    {endpoint_url}/{base}/{table}. Rows are addressed by Airtable's record
    id (ConfessionRecord.record_key); lookups use filterByFormula.

    RULES:
    - api_key, base and table default to the values in Settings
    - transport is injectable (httpx.MockTransport in tests)
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = settings.airtable_api_key
        self._base_url = "{}/{}".format(
            settings.airtable_endpoint_url.rstrip("/"), settings.airtable_base
        )
        self._table = settings.airtable_table
        self._transport = transport
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> AirtableRecordStore:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": "Bearer {}".format(self._api_key)},
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "AirtableRecordStore must be used as an async context manager: "
                "async with AirtableRecordStore(settings) as store: ..."
            )
        return self._client

    def _row_path(self, record: ConfessionRecord) -> str:
        return "/{}/{}".format(self._table, record.record_key)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _select(self, formula: str) -> List[ConfessionRecord]:
        """Return the first page of rows matching ``formula``."""
        client = self._ensure_client()
        try:
            resp = await client.get(
                "/{}".format(self._table),
                params={"filterByFormula": formula},
            )
            resp.raise_for_status()
            rows = resp.json().get("records", [])
            return [ConfessionRecord.from_row(row) for row in rows]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.exception("Airtable select failed for %s", formula)
            raise StoreReadError("Failed to fetch Airtable records: {}".format(exc)) from exc

    async def find_by_staging_ts(self, staging_ts: str) -> Optional[ConfessionRecord]:
        formula = "{{{}}} = {}".format(FIELD_STAGING_TS, _formula_literal(staging_ts))
        records = await self._select(formula)
        return _single(records, "staging_ts={}".format(staging_ts))

    async def get_record(self, record_id: int) -> Optional[ConfessionRecord]:
        formula = "{{{}}} = {}".format(FIELD_ID, int(record_id))
        records = await self._select(formula)
        return _single(records, "id={}".format(record_id))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write(self, method: str, path: str, what: str, **kwargs: Any) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = await client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Airtable %s failed", what)
            raise StoreWriteError("Failed to {} Airtable record: {}".format(what, exc)) from exc

    async def create_record(self, text: str, uid: str) -> ConfessionRecord:
        logger.info("Creating new UID salt...")
        uid_salt = new_salt()
        # scrypt is CPU-bound; keep it off the event loop
        uid_hash = await asyncio.to_thread(hash_user, uid, uid_salt)
        logger.info("Inserting into Airtable...")
        row = await self._write(
            "POST",
            "/{}".format(self._table),
            "insert",
            json={
                "fields": {
                    FIELD_TEXT: text,
                    FIELD_APPROVED: False,
                    FIELD_UID_SALT: uid_salt,
                    FIELD_UID_HASH: uid_hash,
                }
            },
        )
        try:
            record = ConfessionRecord.from_row(row)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreWriteError("Airtable returned a malformed record: {}".format(exc)) from exc
        logger.info("Inserted record %s", record.id)
        return record

    async def update_record(
        self, record: ConfessionRecord, fields: Dict[str, Any]
    ) -> ConfessionRecord:
        check_mutable_fields(fields)
        row = await self._write(
            "PATCH", self._row_path(record), "update", json={"fields": fields}
        )
        try:
            return ConfessionRecord.from_row(row)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreWriteError("Airtable returned a malformed record: {}".format(exc)) from exc

    async def delete_record(self, record: ConfessionRecord) -> None:
        await self._write("DELETE", self._row_path(record), "delete")
        logger.info("Deleted record %s", record.id)
