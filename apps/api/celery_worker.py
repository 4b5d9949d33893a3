"""
Celery Worker Entry Point

Run this file to start Celery workers:
    celery -A celery_worker worker --loglevel=info

To run Celery Beat (hourly challenge status sweep):
    celery -A celery_worker beat --loglevel=info

Or run both worker and beat together:
    celery -A celery_worker worker --beat --loglevel=info
"""

from app.core.celery_app import celery_app
from app.core import celery_signals  # Import to register signal handlers

# This makes Celery discover tasks in the app
__all__ = ["celery_app"]
