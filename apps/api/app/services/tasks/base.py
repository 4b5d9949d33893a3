"""
Shared utilities for Celery tasks.

This module contains common imports and helper functions used across task
modules.
"""

import asyncio
from typing import Any, Awaitable, Dict, Optional
from app.core.celery_app import celery_app
from app.core.database import get_supabase_client
from app.services.logger import logger


def run_async(coro: Awaitable) -> Any:
    """Run a coroutine to completion from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop.run_until_complete(coro)


# Re-export common imports for use in task modules
__all__ = [
    "celery_app",
    "get_supabase_client",
    "logger",
    "Dict",
    "Any",
    "Optional",
    "run_async",
]
