from supabase import create_client, Client
from app.config import get_settings


def get_supabase_admin() -> Client:
    """Service role client for server-side access to the contacts table."""
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key
    )
