"""
Canonical Supabase client module for the scheduling service.

This is the only module that calls ``create_client`` directly; everything else
receives a client through ``get_scheduling_client()`` or dependency injection.
"""
import logging
from typing import Dict, Optional

import httpx
from supabase import Client, create_client
from supabase.client import ClientOptions

from .config import SchedulingSettings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_DB_TIMEOUT = 30.0  # seconds
DEFAULT_CONNECT_TIMEOUT = 10.0  # seconds

_supabase_clients: Dict[str, Client] = {}


def _get_credentials(settings: SchedulingSettings) -> tuple:
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY


def _build_http_client() -> httpx.Client:
    """Build sync HTTP client with HTTP/1.1 and tight timeouts."""
    return httpx.Client(
        http2=False,
        timeout=httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=DEFAULT_DB_TIMEOUT,
            write=DEFAULT_DB_TIMEOUT,
            pool=DEFAULT_DB_TIMEOUT
        ),
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
            keepalive_expiry=30.0
        ),
        follow_redirects=True
    )


def get_scheduling_client(schema: Optional[str] = None) -> Client:
    """
    Create or get cached Supabase client for the scheduling schema.

    Args:
        schema: Database schema to bind (defaults to SUPABASE_SCHEMA)

    Returns:
        Configured sync Supabase client
    """
    settings = get_settings()
    schema = schema or settings.SUPABASE_SCHEMA

    if schema in _supabase_clients:
        return _supabase_clients[schema]

    supabase_url, supabase_key = _get_credentials(settings)

    options = ClientOptions(
        schema=schema,
        auto_refresh_token=False,
        persist_session=False
    )
    client = create_client(supabase_url, supabase_key, options=options)

    try:
        http_client = _build_http_client()
        if hasattr(client, '_postgrest') and hasattr(client._postgrest, 'session'):
            client._postgrest.session = http_client
    except Exception as e:
        logger.warning(f"Could not apply HTTP optimization: {e}")

    _supabase_clients[schema] = client
    logger.info(f"Created Supabase client for schema: {schema}")
    return client
