"""
Challenge Tasks

Celery tasks for the challenge progress engine:
- Recomputing progress after a check-in (enqueued by the check-in flow)
- Hourly status sweep (upcoming -> active -> completed)
"""

from typing import Dict, Any
from app.services.tasks.base import celery_app, logger, run_async


@celery_app.task(
    name="process_challenge_progress",
    bind=True,
    max_retries=2,
    default_retry_delay=30,
)
def process_challenge_progress_task(self, user_id: str, habit_id: str) -> Dict[str, Any]:
    """
    Recompute challenge progress for a stored, completed check-in.

    The engine never raises; a {"processed": False, "error": ...} result is
    retried since it usually means the datastore was unavailable.
    """
    from app.services.challenge_progress_service import challenge_progress_service

    result = run_async(
        challenge_progress_service.process_challenge_progress(user_id, habit_id)
    )

    if result.get("error"):
        if self.request.retries >= self.max_retries:
            logger.error(
                f"Giving up on challenge progress for user {user_id}",
                {"user_id": user_id, "habit_id": habit_id, "error": result["error"]},
            )
            return result
        raise self.retry(exc=RuntimeError(result["error"]))

    if result.get("updates"):
        print(
            f"✅ [CHALLENGE PROGRESS] Updated {len(result['updates'])} challenges for user {user_id}"
        )
    return result


@celery_app.task(
    name="transition_challenge_statuses",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def transition_challenge_statuses_task(self) -> Dict[str, Any]:
    """
    Periodic task advancing challenge status by date.

    Safe to run alongside the in-process scheduler: each transition is gated
    on the stored status.
    """
    from app.services.challenge_lifecycle_service import challenge_lifecycle_service

    try:
        summary = run_async(challenge_lifecycle_service.transition_challenges())

        print(
            f"✅ [CHALLENGE LIFECYCLE] {summary['activated']} started, "
            f"{summary['completed']} completed, {len(summary['errors'])} errors"
        )
        return {"success": True, **summary}

    except Exception as e:
        logger.error(
            f"Failed to transition challenge statuses: {str(e)}",
            {"error": str(e), "retry_count": self.request.retries},
        )

        if self.request.retries >= self.max_retries:
            return {"success": False, "error": str(e)}

        raise self.retry(exc=e)
