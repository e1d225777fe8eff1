import os
from typing import Optional

from supabase import create_client, Client, ClientOptions


class Database:
    """Process-wide Supabase client, or None when credentials are missing"""
    _instance = None

    def __new__(cls, url: Optional[str] = None, key: Optional[str] = None):
        if cls._instance is None:
            url = url or os.environ.get("SUPABASE_URL")
            key = key or os.environ.get("SUPABASE_KEY")
            if not url or not key:
                return None

            # Bound every call so a stuck request cannot hang a webhook
            opts = ClientOptions(postgrest_client_timeout=20)
            cls._instance = create_client(url, key, options=opts)
        return cls._instance


def get_db(url: Optional[str] = None, key: Optional[str] = None) -> Optional[Client]:
    return Database(url, key)
