"""
Auth package exports.

Tests patch ``auth.supabase_client`` helpers to avoid reaching a real Supabase
project; the module is exposed as a package attribute so `unittest.mock.patch()`
can find it.
"""

from auth import supabase_client

__all__ = ["supabase_client"]
