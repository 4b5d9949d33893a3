"""
Challenge Notification Service

Push notifications for challenge events:
- Lifecycle (started / ended): broadcast to every participant
- Milestone and personal completion: sent to the achieving participant only
"""

from enum import Enum
from typing import Any, Dict, Iterable

from app.core.config import settings
from app.models.challenge import Challenge, Milestone, ParticipantStatus
from app.services.expo_push_service import send_push_to_user, send_push_to_users


class ChallengeNotificationType(Enum):
    CHALLENGE_STARTED = "challenge_started"
    CHALLENGE_ENDED = "challenge_ended"
    CHALLENGE_MILESTONE = "challenge_milestone"
    CHALLENGE_COMPLETED = "challenge_completed"


# (title, body) templates with placeholders
CHALLENGE_NOTIFICATION_TEMPLATES = {
    ChallengeNotificationType.CHALLENGE_STARTED: (
        "🏁 Challenge started",
        "'{challenge_title}' has begun. Good luck!",
    ),
    ChallengeNotificationType.CHALLENGE_ENDED: (
        "🏆 Challenge ended",
        "'{challenge_title}' is over. {completed_count} of {participant_count} finished.",
    ),
    ChallengeNotificationType.CHALLENGE_MILESTONE: (
        "🎯 Milestone reached",
        "{milestone_label} in '{challenge_title}'",
    ),
    ChallengeNotificationType.CHALLENGE_COMPLETED: (
        "🎉 Challenge complete",
        "You hit the target in '{challenge_title}'!",
    ),
}


def challenge_deep_link(challenge_id: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/challenges/{challenge_id}"


class ChallengeNotificationService:
    def _payload(self, notification_type: ChallengeNotificationType, challenge: Challenge, **context) -> Dict[str, Any]:
        title, body = CHALLENGE_NOTIFICATION_TEMPLATES[notification_type]
        return {
            "title": title,
            "body": body.format(challenge_title=challenge.title, **context),
            "data": {
                "type": notification_type.value,
                "challengeId": challenge.id,
                "deepLink": challenge_deep_link(challenge.id),
            },
            "notification_type": notification_type.value,
            "entity_type": "challenge",
            "entity_id": challenge.id,
        }

    def _participant_ids(self, challenge: Challenge) -> Iterable[str]:
        return [
            p.user_id for p in challenge.participants if p.status != ParticipantStatus.DROPPED
        ]

    async def notify_started(self, challenge: Challenge):
        payload = self._payload(ChallengeNotificationType.CHALLENGE_STARTED, challenge)
        return await send_push_to_users(self._participant_ids(challenge), **payload)

    async def notify_ended(self, challenge: Challenge):
        payload = self._payload(
            ChallengeNotificationType.CHALLENGE_ENDED,
            challenge,
            completed_count=challenge.stats.completed_count,
            participant_count=challenge.stats.participant_count,
        )
        return await send_push_to_users(self._participant_ids(challenge), **payload)

    async def notify_milestone(self, challenge: Challenge, user_id: str, milestone: Milestone):
        payload = self._payload(
            ChallengeNotificationType.CHALLENGE_MILESTONE,
            challenge,
            milestone_label=milestone.label,
        )
        return await send_push_to_user(user_id, **payload)

    async def notify_completed(self, challenge: Challenge, user_id: str):
        payload = self._payload(ChallengeNotificationType.CHALLENGE_COMPLETED, challenge)
        return await send_push_to_user(user_id, **payload)


# Global instance
challenge_notification_service = ChallengeNotificationService()
