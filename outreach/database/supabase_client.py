import logging
import threading
from typing import Optional

from supabase import create_client, Client

from outreach.utils.constants import Credentials

logger = logging.getLogger(__name__)


class SupabaseClientSingleton:
    """One Supabase client per process, built lazily from SUPABASE_URL / SUPABASE_SECRET_KEY."""

    _instance: Optional[Client] = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> Client:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    creds = Credentials()
                    creds.require('SUPABASE_URL', 'SUPABASE_SECRET_KEY')
                    cls._instance = create_client(creds.SUPABASE_URL, creds.SUPABASE_SECRET_KEY)
                    logger.info("Supabase client initialized")
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None
