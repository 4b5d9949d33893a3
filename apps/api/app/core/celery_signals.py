"""
Celery Signal Handlers

Hooks for Celery lifecycle events (e.g., worker startup).
"""

from celery.signals import worker_ready


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    """
    Run the challenge status sweep as soon as the worker starts, instead of
    waiting for the first beat interval.
    """
    from app.services.tasks import transition_challenge_statuses_task

    print("🚀 Celery worker ready! Running initial challenge status sweep...")

    transition_challenge_statuses_task.apply_async(countdown=0)

    print("✅ Initial challenge status sweep queued")
