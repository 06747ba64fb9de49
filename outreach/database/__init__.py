"""
Database module for the outreach follow-up engine.

Provides the storage interface and its Supabase implementation.
"""

from outreach.database.storage import Storage, SupabaseStorage

__all__ = [
    'Storage',
    'SupabaseStorage',
]
