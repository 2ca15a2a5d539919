"""
Supabase client initialization for server-side storage access.
"""

import logging
import os
from typing import Optional

from supabase import create_client, Client
from yarl import URL

logger = logging.getLogger(__name__)


def normalize_supabase_url(url: Optional[str]) -> Optional[str]:
    """Ensure Supabase URL ends with a trailing slash to satisfy storage client."""
    if not url:
        return None
    return url if url.endswith("/") else f"{url}/"


def _fix_storage_url(supabase: Client) -> None:
    # Ensure storage_url ends with a slash to avoid storage3 warnings.
    try:
        storage_url = str(supabase.storage_url)
        if not storage_url.endswith("/"):
            supabase.storage_url = URL(f"{storage_url}/")
    except AttributeError:
        pass


def get_service_role_client() -> Optional[Client]:
    """
    Return a Supabase client using the service role key (bypasses RLS).
    Uploads come from anonymous drivers, so the server writes on their behalf.

    Requires:
        - SUPABASE_URL
        - SUPABASE_SERVICE_ROLE_KEY

    Returns:
        Supabase client instance, or None if credentials are missing
    """
    supabase_url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    service_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not supabase_url or not service_key:
        return None
    try:
        supabase = create_client(supabase_url, service_key)
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {e}")
        return None
    _fix_storage_url(supabase)
    return supabase
