"""
HTTP clients for a Supabase project.

SupabaseEntryTable speaks PostgREST (``/rest/v1/{table}``) and
SupabaseStorage speaks the storage API (``/storage/v1/object``). Both
authenticate with the project's API key plus the signed-in user's access
token, so row level security applies on top of the ``user_id`` filters
sent with every query.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote, urlparse

import httpx

from .config import DEFAULT_BUCKET, DEFAULT_TABLE, DEFAULT_TIMEOUT, DEFAULT_UPLOAD_TIMEOUT
from .errors import RemoteError, StorageError

logger = logging.getLogger(__name__)


def _check_https(url: str) -> str:
    url = url.rstrip("/")
    # Refuse non-HTTPS for remote APIs (keys would be sent in cleartext)
    if not url.startswith("https://"):
        host = urlparse(url).hostname or ""
        if host not in ("localhost", "127.0.0.1", "::1"):
            raise ValueError(
                f"Supabase URL must use HTTPS (got {url}). "
                "Use HTTPS to protect API credentials, or use localhost for local development."
            )
    return url


def _auth_headers(api_key: str, access_token: str | None) -> dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {access_token or api_key}",
    }


def _describe(e: httpx.HTTPStatusError) -> str:
    return f"{e.response.status_code} {e.response.text[:200]}"


class SupabaseEntryTable:
    """EntryTable backed by a PostgREST table."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        table: str = DEFAULT_TABLE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = _check_https(url)
        self._path = f"/rest/v1/{table}"
        self._client = httpx.AsyncClient(
            base_url=self._url,
            headers={
                **_auth_headers(api_key, access_token),
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, action: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, self._path, **kwargs)
            resp.raise_for_status()
            return resp.json() if resp.content else []
        except httpx.HTTPStatusError as e:
            raise RemoteError(f"Failed to {action}: {_describe(e)}") from e
        except httpx.HTTPError as e:
            raise RemoteError(f"Failed to {action}: {e}") from e
        except ValueError as e:
            raise RemoteError(f"Failed to {action}: invalid JSON response") from e

    async def select(self, user_id: str) -> list[dict[str, Any]]:
        """GET rows for user_id, newest first."""
        rows = await self._request(
            "GET", "fetch entries",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "order": "created_at.desc",
            },
        )
        logger.debug("Fetched %d rows for %s", len(rows), user_id)
        return rows

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "POST", "create entry",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise RemoteError("Failed to create entry: no row returned")
        return rows[0]

    async def update(
        self,
        id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        rows = await self._request(
            "PATCH", "update entry",
            params={"id": f"eq.{id}", "user_id": f"eq.{user_id}"},
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else None

    async def delete(self, id: str, user_id: str) -> bool:
        rows = await self._request(
            "DELETE", "delete entry",
            params={"id": f"eq.{id}", "user_id": f"eq.{user_id}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(rows)

    async def close(self) -> None:
        await self._client.aclose()


class SupabaseStorage:
    """ObjectStorage backed by a Supabase storage bucket."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        bucket: str = DEFAULT_BUCKET,
        timeout: float = DEFAULT_UPLOAD_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = _check_https(url)
        self._bucket = bucket
        self._client = httpx.AsyncClient(
            base_url=self._url,
            headers=_auth_headers(api_key, access_token),
            timeout=timeout,
            transport=transport,
        )

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        """POST /storage/v1/object/{bucket}/{key}."""
        path = f"/storage/v1/object/{self._bucket}/{quote(key)}"
        try:
            resp = await self._client.post(
                path,
                content=data,
                headers={
                    "Content-Type": content_type,
                    "x-upsert": "true" if upsert else "false",
                },
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 409:
                raise StorageError(f"Object already exists: {key}") from e
            raise StorageError(f"Upload of {key} rejected: {_describe(e)}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e

    def public_url(self, key: str) -> str:
        return f"{self._url}/storage/v1/object/public/{self._bucket}/{quote(key)}"

    async def close(self) -> None:
        await self._client.aclose()
