"""
Database Configuration

Supabase client for REST API access (already pooled via PostgREST).

Challenge records are stored as documents: scalar columns for the fields the
engine filters on (status, type, workspace_id, habit_id, habit_match_mode,
start_date, end_date) and JSON columns for rules, milestones, participants,
stats and settings. A progress update rewrites the whole challenge row.

The client is created on first use so that modules importing this one (and
the test suite) do not need Supabase credentials at import time.
"""

from typing import Optional

from supabase import create_client, Client
from app.core.config import settings


_supabase: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client instance.

    This uses the REST API which is already connection-pooled via PostgREST.
    """
    global _supabase

    if _supabase is None:
        _supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)

    return _supabase
