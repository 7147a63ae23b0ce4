import os
from functools import lru_cache

from dotenv import load_dotenv
from supabase import create_client, Client


load_dotenv()


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Service-role Supabase client, created on first use."""
    supabase_url = os.getenv("PUBLIC_SUPABASE_URL")
    supabase_key = os.getenv("SECRET_API_KEY")

    return create_client(supabase_url, supabase_key)
