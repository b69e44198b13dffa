"""
Protocol definitions for the journal's external collaborators.

Defines interface contracts for:
- EntryTable / ObjectStorage: the backend-as-a-service (SQLite and a
  directory locally, Supabase REST remotely)
- PromptService: chat completion for prompts, reflections and summaries
- AuthProvider: who is signed in
- MediaDevices / MediaStream / MediaTrack: device capture
"""

from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from .types import Principal


@runtime_checkable
class EntryTable(Protocol):
    """
    Remote table of journal entry rows.

    Every operation is scoped by ``user_id`` in addition to the row id.
    Rows use the columns id, user_id, title, content, tags, type,
    media_url, summary, wallpaper, created_at, updated_at.

    Implementations raise RemoteError on failure.
    """

    async def select(self, user_id: str) -> list[dict[str, Any]]:
        """All rows owned by user_id, newest created_at first."""
        ...

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it as stored, with its issued id."""
        ...

    async def update(
        self,
        id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        """Apply changes to the matching row; None if no row matched."""
        ...

    async def delete(self, id: str, user_id: str) -> bool:
        """Delete the matching row; False if no row matched."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class ObjectStorage(Protocol):
    """
    Object storage for recorded media.

    Uploads are create-only unless ``upsert`` is set. Implementations
    raise StorageError on failure, including an existing key.
    """

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> None: ...

    def public_url(self, key: str) -> str:
        """Stable public URL for a stored object."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class PromptService(Protocol):
    """
    Chat completion boundary.

    ``messages`` is an ordered conversation of ChatMessage values
    (system first). Raises ServiceError on any failure.
    """

    async def complete(self, messages: Sequence[Any]) -> str: ...

    async def close(self) -> None: ...


PrincipalListener = Callable[[Optional[Principal]], Awaitable[Any]]


@runtime_checkable
class AuthProvider(Protocol):
    """Exposes the current principal and announces changes to it."""

    @property
    def principal(self) -> Optional[Principal]: ...

    def add_listener(self, listener: PrincipalListener) -> None: ...


@runtime_checkable
class MediaTrack(Protocol):
    """One hardware track (microphone, camera) of a media stream."""

    kind: str

    def stop(self) -> None:
        """Release the underlying device. Must be idempotent."""
        ...


@runtime_checkable
class MediaStream(Protocol):
    """A live device stream that produces encoded chunks."""

    @property
    def mime_type(self) -> str: ...

    @property
    def tracks(self) -> Sequence[MediaTrack]: ...

    def chunks(self, time_slice: float) -> AsyncIterator[bytes]:
        """Yield recorded data roughly every time_slice seconds.

        The iterator ends once every track has been stopped.
        """
        ...


@runtime_checkable
class MediaDevices(Protocol):
    """Grants access to capture devices."""

    async def get_user_media(self, *, audio: bool, video: bool) -> MediaStream:
        """Open a stream with the requested kinds.

        Raises:
            CaptureError: permission denied or no such device
        """
        ...
