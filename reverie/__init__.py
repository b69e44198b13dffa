"""
Reverie

A private journal: text, audio and video entries, browsed by calendar day,
with a journaling assistant for prompts, reflections and summaries.

Quick Start:
    from reverie import Journal, EntryDraft, Principal

    journal = Journal()  # uses ~/.reverie/
    await journal.sign_in(Principal("u1", "me@example.com"))
    result = await journal.save_entry(EntryDraft(title="Today", content="..."))

CLI Usage:
    reverie add "Morning pages" -c "..." -t morning
    reverie list --json
    reverie record "Voice note" --seconds 30
    reverie chat

Default Store:
    ~/.reverie/ holding reverie.toml, a SQLite entry table and recorded media.
    Override with REVERIE_DATA_PATH or an explicit path argument.

Environment Variables:
    REVERIE_DATA_PATH        - Override default data location
    REVERIE_BACKEND          - "local" or "supabase"
    REVERIE_SUPABASE_URL     - Supabase project URL
    REVERIE_SUPABASE_KEY     - Supabase API key
    REVERIE_ACCESS_TOKEN     - Signed-in user's access token
    REVERIE_USER_ID          - Signed-in user's id (CLI)
    REVERIE_OPENAI_API_KEY   - API key for the openai assistant provider
"""

from .api import Journal
from .assistant import Assistant, ChatMessage, Conversation
from .capture import MediaRecorder
from .errors import (
    AuthError,
    CaptureError,
    JournalError,
    RemoteError,
    ServiceError,
    StorageError,
    ValidationError,
)
from .store import EntryStore
from .types import (
    Blob,
    EntryDraft,
    EntryType,
    Err,
    JournalEntry,
    Ok,
    Principal,
    add_tag,
    normalize_tags,
)
from .uploader import MediaUploader

__version__ = "0.1.0"
__all__ = [
    "Journal",
    "EntryStore",
    "MediaRecorder",
    "MediaUploader",
    "Assistant",
    "ChatMessage",
    "Conversation",
    "Blob",
    "EntryDraft",
    "EntryType",
    "JournalEntry",
    "Principal",
    "Ok",
    "Err",
    "add_tag",
    "normalize_tags",
    "JournalError",
    "AuthError",
    "CaptureError",
    "StorageError",
    "RemoteError",
    "ServiceError",
    "ValidationError",
]
