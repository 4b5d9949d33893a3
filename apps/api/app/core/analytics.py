"""
PostHog Analytics Service
Handles challenge event tracking and exception monitoring
"""

from posthog import Posthog
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

# Initialize PostHog client
posthog = None


def initialize_posthog():
    """Initialize PostHog client with configuration"""
    global posthog

    if not settings.POSTHOG_API_KEY:
        logger.warning("PostHog API key not found, analytics disabled")
        return None

    try:
        posthog = Posthog(
            project_api_key=settings.POSTHOG_API_KEY,
            host=settings.POSTHOG_HOST,
            enable_exception_autocapture=settings.POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE,
        )
        print("PostHog analytics initialized successfully")
        return posthog
    except Exception as e:
        logger.error(f"Failed to initialize PostHog: {e}")
        return None


def get_posthog():
    """Get PostHog client instance"""
    global posthog
    if posthog is None and settings.POSTHOG_API_KEY:
        posthog = initialize_posthog()
    return posthog


def track_event(user_id: str, event_name: str, properties: dict = None):
    """Track an event for a user"""
    client = get_posthog()
    if not client:
        return

    try:
        client.capture(
            distinct_id=user_id, event=event_name, properties=properties or {}
        )
        logger.debug(f"Event tracked: {event_name} for user {user_id}")
    except Exception as e:
        logger.error(f"Failed to track event {event_name}: {e}")


def track_challenge_joined(user_id: str, challenge_id: str, properties: dict = None):
    """Track a user joining a challenge"""
    track_event(
        user_id=user_id,
        event_name="challenge_joined",
        properties={"challenge_id": challenge_id, **(properties or {})},
    )


def track_challenge_milestone(
    user_id: str, challenge_id: str, milestone_value: float, properties: dict = None
):
    """Track a participant crossing a milestone"""
    track_event(
        user_id=user_id,
        event_name="challenge_milestone_reached",
        properties={
            "challenge_id": challenge_id,
            "milestone_value": milestone_value,
            **(properties or {}),
        },
    )


def track_challenge_completed(
    user_id: str, challenge_id: str, properties: dict = None
):
    """Track a participant reaching the challenge target"""
    track_event(
        user_id=user_id,
        event_name="challenge_completed",
        properties={"challenge_id": challenge_id, **(properties or {})},
    )


def capture_exception(error: Exception, user_id: str = None, properties: dict = None):
    """Manually capture an exception"""
    client = get_posthog()
    if not client:
        return

    try:
        client.capture_exception(
            error=error, distinct_id=user_id or "anonymous", properties=properties or {}
        )
        logger.debug(f"Exception captured for user {user_id or 'anonymous'}")
    except Exception as e:
        logger.error(f"Failed to capture exception: {e}")


def shutdown_posthog():
    """Shutdown PostHog client"""
    global posthog
    if posthog:
        try:
            posthog.shutdown()
            posthog = None
        except Exception as e:
            logger.error(f"Failed to shutdown PostHog: {e}")
