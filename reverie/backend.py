"""
Pluggable backend factory.

Creates the entry table, object storage and prompt service from
configuration. ``local`` uses SQLite plus a media directory inside the
data directory; ``supabase`` talks to a Supabase project over HTTPS.
External backends register via the ``reverie.backends`` entry point
group.

External backend packages provide a factory function::

    def create_backends(config: JournalConfig) -> BackendBundle:
        ...

and register it in their pyproject.toml::

    [project.entry-points."reverie.backends"]
    my-backend = "my_package.backend:create_backends"
"""

import logging
from typing import NamedTuple

from .assistant import ChatCompletionService, ScriptedPromptService
from .config import AssistantConfig, JournalConfig
from .protocol import EntryTable, ObjectStorage, PromptService

logger = logging.getLogger(__name__)


class BackendBundle(NamedTuple):
    """Collection of backends returned by the factory."""
    entry_table: EntryTable
    object_storage: ObjectStorage
    prompt_service: PromptService
    is_local: bool  # True for filesystem-backed stores

    async def close(self) -> None:
        await self.entry_table.close()
        await self.object_storage.close()
        await self.prompt_service.close()


def create_prompt_service(config: AssistantConfig) -> PromptService:
    """Build the assistant provider named in the [assistant] section."""
    if config.provider == "scripted":
        return ScriptedPromptService()
    if config.provider == "openai":
        return ChatCompletionService(
            config.api_key,
            base_url=config.base_url,
            model=config.model,
            max_tokens=config.max_tokens,
        )
    raise ValueError(
        f"Unknown assistant provider: {config.provider!r}. Available: ['scripted', 'openai']"
    )


def create_backends(config: JournalConfig) -> BackendBundle:
    """
    Create backends from configuration.

    For ``backend = "local"`` (default), creates a SQLite entry table
    and a media directory under the data directory.

    For ``backend = "supabase"``, creates PostgREST and storage clients
    from the [remote] section.

    For other values, loads the backend via the ``reverie.backends``
    entry point group.
    """
    if config.backend == "local":
        return _create_local_backends(config)
    if config.backend == "supabase":
        return _create_supabase_backends(config)
    return _load_backend(config.backend, config)


def _create_local_backends(config: JournalConfig) -> BackendBundle:
    """Create the default local backends."""
    from .local import LocalEntryTable, LocalStorage

    return BackendBundle(
        entry_table=LocalEntryTable(config.path / "entries.db"),
        object_storage=LocalStorage(config.path / "media"),
        prompt_service=create_prompt_service(config.assistant),
        is_local=True,
    )


def _create_supabase_backends(config: JournalConfig) -> BackendBundle:
    from .remote import SupabaseEntryTable, SupabaseStorage

    remote = config.remote
    if not remote.is_configured:
        raise ValueError(
            "Supabase backend needs a URL and API key. "
            "Set [remote] url/api_key in reverie.toml or "
            "REVERIE_SUPABASE_URL/REVERIE_SUPABASE_KEY."
        )
    logger.debug("Using Supabase backend at %s", remote.url)
    return BackendBundle(
        entry_table=SupabaseEntryTable(
            remote.url,
            remote.api_key,
            access_token=remote.access_token or None,
            table=remote.table,
            timeout=remote.timeout,
        ),
        object_storage=SupabaseStorage(
            remote.url,
            remote.api_key,
            access_token=remote.access_token or None,
            bucket=remote.bucket,
            timeout=remote.upload_timeout,
        ),
        prompt_service=create_prompt_service(config.assistant),
        is_local=False,
    )


def _load_backend(name: str, config: JournalConfig) -> BackendBundle:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="reverie.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: {['local', 'supabase', *available]}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. Built-in backends are 'local' and 'supabase'."
    )
