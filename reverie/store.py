"""
In-memory mirror of the signed-in user's journal entries.

The EntryStore is the single source of truth for callers. Every mutation
goes to the remote EntryTable first and touches local state only after
the table confirms it, so a failure never leaves a half-applied change
in the cache. Operations return ``Ok``/``Err`` results instead of
raising; errors are also handed to an ``on_error`` notifier so the
caller can show them.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Awaitable, Callable, Optional, TypeVar

from .config import DEFAULT_TIMEOUT
from .errors import AuthError, JournalError, RemoteError, ValidationError
from .protocol import AuthProvider, EntryTable
from .types import (
    EntryDraft,
    Err,
    JournalEntry,
    Ok,
    Principal,
    Result,
    entry_from_row,
    entry_to_row,
    format_timestamp,
    utc_now,
    validate_entry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_error(error: JournalError) -> None:
    logger.warning("%s: %s", type(error).__name__, error)


def calendar_day(value: date) -> date:
    """Local calendar day of a date or datetime.

    Aware datetimes are converted to local time first; naive ones are
    taken as already local.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


class EntryStore:
    """
    Entries owned by the current principal, newest first.

    Fetched entries keep the table's created_at-descending order; entries
    created in this session are put at the front regardless of their
    timestamp.
    """

    def __init__(
        self,
        table: EntryTable,
        *,
        on_error: Optional[Callable[[JournalError], None]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._table = table
        self._on_error = on_error or _log_error
        self._timeout = timeout
        self._principal: Optional[Principal] = None
        self._entries: list[JournalEntry] = []
        self._current: Optional[JournalEntry] = None
        self._loading = False
        # Bumped by every fetch; only the latest one owns the loading flag
        self._fetch = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def entries(self) -> tuple[JournalEntry, ...]:
        return tuple(self._entries)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def current(self) -> Optional[JournalEntry]:
        """The selected entry. Transient, never persisted."""
        return self._current

    def select(self, entry_id: Optional[str]) -> Optional[JournalEntry]:
        """Select an entry by id, or clear the selection with None.

        Raises KeyError if the id is not in the local set.
        """
        if entry_id is None:
            self._current = None
            return None
        entry = self.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        self._current = entry
        return entry

    def get(self, entry_id: str) -> Optional[JournalEntry]:
        index = self._index(entry_id)
        return None if index is None else self._entries[index]

    def _index(self, entry_id: str) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return i
        return None

    def notify(self, error: JournalError) -> Err:
        """Hand an error to the notifier and wrap it as a result."""
        self._on_error(error)
        return Err(error)

    async def _call(self, operation: Awaitable[T], action: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RemoteError(f"Timed out trying to {action} after {self._timeout}s") from e

    # -------------------------------------------------------------------------
    # Principal and fetching
    # -------------------------------------------------------------------------

    def bind(self, auth: AuthProvider) -> None:
        """Follow an auth provider: every principal change refetches."""
        auth.add_listener(self.set_principal)

    async def set_principal(self, principal: Optional[Principal]) -> Result:
        """Switch to a new principal and load their entries.

        The local set is empty while no principal is signed in.
        """
        self._principal = principal
        self._entries = []
        self._current = None
        self._fetch += 1
        self._loading = False
        if principal is None:
            return Ok(self.entries)
        return await self.refresh()

    async def refresh(self) -> Result:
        """Refetch all entries of the current principal.

        On failure the local set is left empty rather than stale.
        """
        principal = self._principal
        if principal is None:
            return self.notify(AuthError("Sign in to load journal entries"))

        self._fetch += 1
        fetch = self._fetch
        self._loading = True
        try:
            rows = await self._call(self._table.select(principal.id), "fetch entries")
            entries = [entry_from_row(row) for row in rows]
        except RemoteError as e:
            if self._principal is principal:
                self._entries = []
                self._current = None
            return self.notify(e)
        finally:
            if self._fetch == fetch:
                self._loading = False

        if self._principal is not principal:
            logger.debug("Discarding entries fetched for %s after sign-out", principal.id)
            return Ok(self.entries)

        entries.sort(key=lambda e: e.date, reverse=True)
        self._entries = entries
        if self._current is not None:
            self._current = self.get(self._current.id)
        logger.info("Loaded %d entries for %s", len(entries), principal.id)
        return Ok(self.entries)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(self, draft: EntryDraft) -> Result:
        """Insert a new entry remotely, then put it at the front locally."""
        principal = self._principal
        if principal is None:
            return self.notify(AuthError("Sign in to create journal entries"))
        try:
            validate_entry(draft)
        except ValidationError as e:
            return self.notify(e)

        row = entry_to_row(draft, principal.id)
        if draft.date is not None:
            row["created_at"] = format_timestamp(draft.date)
        try:
            stored = await self._call(self._table.insert(row), "create entry")
            entry = entry_from_row(stored)
        except RemoteError as e:
            return self.notify(e)

        if self._principal is principal:
            self._entries.insert(0, entry)
        logger.info("Created entry %s", entry.id)
        return Ok(entry)

    def _check_owned(self, entry_id: str, action: str) -> Optional[Err]:
        if self._principal is None:
            return self.notify(AuthError(f"Sign in to {action} journal entries"))
        if self._index(entry_id) is None:
            return self.notify(AuthError(
                f"Entry {entry_id!r} does not belong to the signed-in user"
            ))
        return None

    async def update(self, entry: JournalEntry) -> Result:
        """Persist changes to an owned entry, then replace it in place."""
        denied = self._check_owned(entry.id, "update")
        if denied is not None:
            return denied
        try:
            validate_entry(entry)
        except ValidationError as e:
            return self.notify(e)

        principal = self._principal
        changes = entry_to_row(entry, principal.id)
        del changes["user_id"]
        changes["updated_at"] = format_timestamp(utc_now())
        try:
            stored = await self._call(
                self._table.update(entry.id, principal.id, changes), "update entry"
            )
            if stored is None:
                raise RemoteError(f"Entry {entry.id!r} no longer exists")
            updated = entry_from_row(stored)
        except RemoteError as e:
            return self.notify(e)

        index = self._index(updated.id)
        if index is not None and self._principal is principal:
            self._entries[index] = updated
        if self._current is not None and self._current.id == updated.id:
            self._current = updated
        logger.info("Updated entry %s", updated.id)
        return Ok(updated)

    async def delete(self, entry_id: str) -> Result:
        """Delete an owned entry remotely, then drop it locally."""
        denied = self._check_owned(entry_id, "delete")
        if denied is not None:
            return denied

        principal = self._principal
        try:
            deleted = await self._call(
                self._table.delete(entry_id, principal.id), "delete entry"
            )
            if not deleted:
                raise RemoteError(f"Entry {entry_id!r} no longer exists")
        except RemoteError as e:
            return self.notify(e)

        self._entries = [e for e in self._entries if e.id != entry_id]
        if self._current is not None and self._current.id == entry_id:
            self._current = None
        logger.info("Deleted entry %s", entry_id)
        return Ok(entry_id)

    async def set_tags(self, entry_id: str, tags) -> Result:
        """Replace an owned entry's tags (normalized and deduplicated)."""
        entry = self.get(entry_id)
        if entry is None:
            return self._check_owned(entry_id, "tag")
        return await self.update(replace(entry, tags=tuple(tags)))

    # -------------------------------------------------------------------------
    # Local queries
    # -------------------------------------------------------------------------

    def get_for_date(self, day: date) -> Optional[JournalEntry]:
        """The first entry (newest first) written on the same local calendar day."""
        target = calendar_day(day)
        for entry in self._entries:
            if calendar_day(entry.date) == target:
                return entry
        return None

    def tags(self) -> list[str]:
        """Distinct tags across all entries, in first-seen order."""
        seen: list[str] = []
        for entry in self._entries:
            for tag in entry.tags:
                if tag not in seen:
                    seen.append(tag)
        return seen

    def search(self, text: str) -> list[JournalEntry]:
        """Entries whose title or content contains text (case-insensitive)."""
        needle = text.strip().lower()
        if not needle:
            return list(self._entries)
        return [
            e for e in self._entries
            if needle in e.title.lower() or needle in e.content.lower()
        ]
