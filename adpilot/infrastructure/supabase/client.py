from __future__ import annotations
from supabase import create_client, acreate_client, Client, AsyncClient
import logging
from adpilot.infrastructure.config.settings import get_settings

_client: Client | None = None
_async_client: AsyncClient | None = None
logger = logging.getLogger(__name__)


class SupabaseConfigError(RuntimeError):
    pass


def _credentials() -> tuple[str, str]:
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        raise SupabaseConfigError("Supabase URL and Key are required")
    return settings.supabase_url, settings.supabase_key


def get_supabase() -> Client:
    global _client
    if _client is None:
        url, key = _credentials()
        logger.debug("Creating Supabase client url=%s", url)
        _client = create_client(url, key)
    return _client


async def get_async_supabase() -> AsyncClient:
    """Async client, used only for the realtime channel."""
    global _async_client
    if _async_client is None:
        url, key = _credentials()
        logger.debug("Creating async Supabase client url=%s", url)
        _async_client = await acreate_client(url, key)
    return _async_client
