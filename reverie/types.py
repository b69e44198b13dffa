"""
Data types for journal entries, media blobs and operation results.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, ClassVar, Generic, Iterable, Optional, TypeVar, Union

from .errors import JournalError, RemoteError, ValidationError


DEFAULT_WALLPAPER = "default"

# Content type used when a recorder does not report one
FALLBACK_MIME_TYPE = "audio/webm"


class EntryType(StrEnum):
    """Kind of journal entry; non-text kinds carry a media URL."""

    TEXT = "text"
    AUDIO = "audio"
    VIDEO = "video"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime for the entry table (UTC ISO 8601).

    Naive datetimes are taken to be local time.
    """
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Handles 'Z' and '+00:00' suffixes as well as naive values,
    which are taken to be UTC.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def normalize_tag(tag: str) -> str:
    """Tags are compared and stored lowercase, without surrounding space."""
    return tag.strip().lower()


def normalize_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Normalize, drop empties and deduplicate, keeping first-seen order."""
    result: list[str] = []
    for tag in tags:
        norm = normalize_tag(tag)
        if norm and norm not in result:
            result.append(norm)
    return tuple(result)


def add_tag(tags: Iterable[str], tag: str) -> tuple[str, ...]:
    """Append a tag unless it (case-insensitively) is already present."""
    return normalize_tags([*tags, tag])


def remove_tag(tags: Iterable[str], tag: str) -> tuple[str, ...]:
    target = normalize_tag(tag)
    return tuple(t for t in normalize_tags(tags) if t != target)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntryDraft:
    """
    A journal entry that has not been persisted yet.

    ``date`` is optional; the entry table stamps the creation time
    when it is left out.
    """
    title: str
    content: str = ""
    tags: tuple[str, ...] = ()
    type: EntryType = EntryType.TEXT
    media_url: Optional[str] = None
    summary: Optional[str] = None
    wallpaper: str = DEFAULT_WALLPAPER
    date: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", normalize_tags(self.tags))
        object.__setattr__(self, "type", EntryType(self.type))


@dataclass(frozen=True)
class JournalEntry:
    """
    A persisted journal entry.

    ``id`` is issued by the entry table and never generated locally.
    ``date`` is the creation timestamp reported by the table.
    """
    id: str
    title: str
    date: datetime
    content: str = ""
    tags: tuple[str, ...] = ()
    type: EntryType = EntryType.TEXT
    media_url: Optional[str] = None
    summary: Optional[str] = None
    wallpaper: str = DEFAULT_WALLPAPER
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", normalize_tags(self.tags))
        object.__setattr__(self, "type", EntryType(self.type))

    @property
    def has_media(self) -> bool:
        return self.type is not EntryType.TEXT and bool(self.media_url)


def validate_entry(entry: Union[EntryDraft, JournalEntry]) -> None:
    """Check the invariants the entry table relies on.

    Raises:
        ValidationError: empty title, or a text entry carrying a media URL
    """
    if not entry.title or not entry.title.strip():
        raise ValidationError("Please enter a title for your entry")
    if entry.type is EntryType.TEXT and entry.media_url:
        raise ValidationError("Text entries cannot carry a media URL")


def entry_to_row(entry: Union[EntryDraft, JournalEntry], user_id: str) -> dict[str, Any]:
    """Map an entry onto entry table columns (without id and timestamps)."""
    return {
        "user_id": user_id,
        "title": entry.title,
        "content": entry.content,
        "tags": list(entry.tags),
        "type": entry.type.value,
        "media_url": entry.media_url or None,
        "summary": entry.summary,
        "wallpaper": entry.wallpaper,
    }


def entry_from_row(row: dict[str, Any]) -> JournalEntry:
    """Build a JournalEntry from an entry table row.

    Raises:
        RemoteError: if the row is missing required columns or has
            an unknown entry type
    """
    try:
        entry_type = EntryType(row.get("type") or EntryType.TEXT)
        created = row["created_at"]
        updated = row.get("updated_at")
        return JournalEntry(
            id=str(row["id"]),
            title=row.get("title") or "",
            date=created if isinstance(created, datetime) else parse_utc_timestamp(created),
            content=row.get("content") or "",
            tags=tuple(row.get("tags") or ()),
            type=entry_type,
            # text entries never carry media, whatever the row says
            media_url=None if entry_type is EntryType.TEXT else (row.get("media_url") or None),
            summary=row.get("summary"),
            wallpaper=row.get("wallpaper") or DEFAULT_WALLPAPER,
            updated_at=(
                None if not updated
                else updated if isinstance(updated, datetime)
                else parse_utc_timestamp(updated)
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteError(f"Malformed entry row {row.get('id')!r}: {e}") from e


# ---------------------------------------------------------------------------
# Media and identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Blob:
    """Binary media data with its content type."""
    data: bytes = b""
    content_type: str = FALLBACK_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def concat(cls, chunks: Iterable[bytes], content_type: str) -> "Blob":
        return cls(b"".join(chunks), content_type)


@dataclass(frozen=True)
class Principal:
    """The signed-in user, as far as the journal is concerned."""
    id: str
    email: str = ""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful store operation."""
    value: T
    ok: ClassVar[bool] = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed store operation; local state was left untouched."""
    error: JournalError
    ok: ClassVar[bool] = False

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class MediaPreview:
    """What a player needs to render an entry's media."""
    kind: EntryType
    url: str
    content_type: str
