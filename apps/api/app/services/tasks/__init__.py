"""
Celery Tasks Package

Re-exports all tasks for Celery autodiscovery.

- challenge_tasks: check-in progress recomputation and the status sweep
"""

# Challenge tasks
from app.services.tasks.challenge_tasks import (
    process_challenge_progress_task,
    transition_challenge_statuses_task,
)

__all__ = [
    "process_challenge_progress_task",
    "transition_challenge_statuses_task",
]
