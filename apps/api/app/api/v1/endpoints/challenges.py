"""
Challenges API endpoints
"""

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel, Field
from typing import List, Dict, Any
from app.core.auth import get_current_user
from app.models.challenge import ChallengeCreate, ChallengeRulesUpdate
from app.services.logger import logger
from app.services.challenge_service import ChallengeService, challenge_service
from app.services.challenge_progress_service import (
    ChallengeProgressService,
    challenge_progress_service,
)

router = APIRouter(redirect_slashes=False)


def get_challenge_service() -> ChallengeService:
    return challenge_service


def get_challenge_progress_service() -> ChallengeProgressService:
    return challenge_progress_service


class JoinChallengeRequest(BaseModel):
    linked_habit_ids: List[str] = Field(default_factory=list)


class ProgressRequest(BaseModel):
    habit_id: str
    # Hand the work to a Celery worker instead of running it in the request
    enqueue: bool = False


def _to_http_error(e: Exception, action: str, context: Dict[str, Any]) -> HTTPException:
    if isinstance(e, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.error(f"Failed to {action}", {"error": str(e), **context})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.post("/workspaces/{workspace_id}", status_code=status.HTTP_201_CREATED)
async def create_challenge(
    workspace_id: str,
    payload: ChallengeCreate,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Create a challenge; the creator joins it automatically"""
    try:
        challenge = await service.create_challenge(workspace_id, current_user["id"], payload)
        return challenge.to_record()
    except Exception as e:
        raise _to_http_error(
            e, "create challenge", {"workspace_id": workspace_id, "user_id": current_user["id"]}
        )


@router.post("/progress")
async def process_progress(
    payload: ProgressRequest,
    current_user: dict = Depends(get_current_user),
    progress_service: ChallengeProgressService = Depends(get_challenge_progress_service),
):
    """Check-in hook: recompute challenge progress for a completed entry"""
    if payload.enqueue:
        from app.services.tasks import process_challenge_progress_task

        task = process_challenge_progress_task.delay(current_user["id"], payload.habit_id)
        return {"queued": True, "task_id": task.id}

    # Never fails the caller; errors come back as {"processed": False, ...}
    return await progress_service.process_challenge_progress(
        current_user["id"], payload.habit_id
    )


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        challenge = await service.get_challenge(challenge_id)
        return challenge.to_record()
    except Exception as e:
        raise _to_http_error(e, "get challenge", {"challenge_id": challenge_id})


@router.post("/{challenge_id}/join")
async def join_challenge(
    challenge_id: str,
    payload: JoinChallengeRequest,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        challenge = await service.join_challenge(
            challenge_id, current_user["id"], payload.linked_habit_ids
        )
        return challenge.to_record()
    except Exception as e:
        raise _to_http_error(
            e, "join challenge", {"challenge_id": challenge_id, "user_id": current_user["id"]}
        )


@router.post("/{challenge_id}/leave")
async def leave_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        await service.leave_challenge(challenge_id, current_user["id"])
        return {"success": True}
    except Exception as e:
        raise _to_http_error(
            e, "leave challenge", {"challenge_id": challenge_id, "user_id": current_user["id"]}
        )


@router.post("/{challenge_id}/cancel")
async def cancel_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        challenge = await service.cancel_challenge(challenge_id, current_user["id"])
        return {"success": True, "status": challenge.status.value}
    except Exception as e:
        raise _to_http_error(e, "cancel challenge", {"challenge_id": challenge_id})


@router.patch("/{challenge_id}/rules")
async def update_challenge_rules(
    challenge_id: str,
    changes: ChallengeRulesUpdate,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        challenge = await service.update_challenge_rules(
            challenge_id, current_user["id"], changes
        )
        return challenge.to_record()
    except Exception as e:
        raise _to_http_error(e, "update challenge rules", {"challenge_id": challenge_id})


@router.get("/{challenge_id}/leaderboard")
async def get_challenge_leaderboard(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Get challenge leaderboard"""
    try:
        return await service.get_leaderboard(challenge_id)
    except Exception as e:
        raise _to_http_error(e, "get leaderboard", {"challenge_id": challenge_id})
