"""
Journal session API.

A Journal is built once per session and handed to whatever renders it.
It wires the auth state, the entry store, the media uploader, the
assistant and the capture devices together, and runs the
record → upload → save flow.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from .assistant import Assistant, Conversation
from .auth import SessionAuth
from .backend import BackendBundle, create_backends
from .capture import MediaRecorder
from .config import JournalConfig, get_data_directory, load_or_create_config
from .errors import AuthError, JournalError, StorageError
from .logging_config import configure_ops_log
from .protocol import MediaDevices
from .store import EntryStore
from .types import Blob, EntryDraft, EntryType, Principal, Result
from .uploader import MediaUploader

logger = logging.getLogger(__name__)


class Journal:
    """
    One user session over the configured backends.

    Example::

        journal = Journal()
        await journal.sign_in(Principal("u1", "me@example.com"))
        result = await journal.save_entry(EntryDraft(title="Today", content="..."))
    """

    def __init__(
        self,
        data_path: Optional[Path] = None,
        *,
        config: Optional[JournalConfig] = None,
        backends: Optional[BackendBundle] = None,
        auth: Optional[SessionAuth] = None,
        devices: Optional[MediaDevices] = None,
        on_error: Optional[Callable[[JournalError], None]] = None,
    ):
        if config is None:
            config = load_or_create_config(data_path or get_data_directory())
        self._config = config
        self._backends = backends or create_backends(config)
        self._ops_log = configure_ops_log(config.path) if self._backends.is_local else None

        self.auth = auth or SessionAuth()
        self.store = EntryStore(
            self._backends.entry_table,
            on_error=on_error,
            timeout=config.remote.timeout,
        )
        self.store.bind(self.auth)
        self.uploader = MediaUploader(
            self._backends.object_storage,
            timeout=config.remote.upload_timeout,
        )
        self.assistant = Assistant(self._backends.prompt_service)
        self._devices = devices

    @property
    def config(self) -> JournalConfig:
        return self._config

    async def sign_in(self, principal: Principal) -> None:
        """Sign in; the store loads the principal's entries."""
        await self.auth.sign_in(principal)

    async def sign_out(self) -> None:
        await self.auth.sign_out()

    def recorder(self, **observers) -> MediaRecorder:
        """A MediaRecorder on the session's capture devices.

        Falls back to the microphone (PyAudio) when no devices were given.
        """
        devices = self._devices
        if devices is None:
            from .devices import PyAudioDevices
            devices = self._devices = PyAudioDevices()
        return MediaRecorder(
            devices,
            time_slice_ms=self._config.capture.time_slice_ms,
            **observers,
        )

    def conversation(self) -> Conversation:
        """A fresh multi-turn chat with the assistant."""
        return Conversation(self.assistant)

    def new_draft(self, title: str, **fields) -> EntryDraft:
        """A draft carrying the configured default wallpaper."""
        fields.setdefault("wallpaper", self._config.default_wallpaper)
        return EntryDraft(title=title, **fields)

    async def save_entry(self, draft: EntryDraft, blob: Optional[Blob] = None) -> Result:
        """
        Upload the recording (if any), then create the entry.

        If the upload succeeds but the entry cannot be saved, the
        uploaded object is left in storage unreferenced.
        """
        principal = self.store.principal
        uploaded = ""
        if principal is not None and draft.type is not EntryType.TEXT and blob is not None:
            try:
                uploaded = await self.uploader.upload(blob, principal.id, draft.type)
            except (StorageError, AuthError) as e:
                return self.store.notify(e)
            if uploaded:
                draft = replace(draft, media_url=uploaded)

        result = await self.store.create(draft)
        if not result.ok and uploaded:
            logger.warning("Entry save failed; uploaded media is orphaned: %s", uploaded)
        return result

    async def summarize_entry(self, entry_id: str) -> Result:
        """Ask the assistant for a summary and store it on the entry."""
        entry = self.store.get(entry_id)
        if entry is None:
            return self.store.notify(AuthError(
                f"Entry {entry_id!r} does not belong to the signed-in user"
            ))
        summary = await self.assistant.summarize(entry.content or entry.title)
        return await self.store.update(replace(entry, summary=summary))

    async def close(self) -> None:
        """Close backend connections and the ops log."""
        await self._backends.close()
        if self._ops_log is not None:
            logging.getLogger("reverie").removeHandler(self._ops_log)
            self._ops_log.close()
            self._ops_log = None

    async def __aenter__(self) -> "Journal":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
