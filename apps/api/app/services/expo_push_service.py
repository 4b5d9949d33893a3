"""
Expo push notification delivery for challenge events.

- One notification_history record per user (inbox), even without devices
- Delivered to every active Expo token the user registered
- Batched sending (max 100 per batch) with a short retry on server errors
- DeviceNotRegistered tokens are marked inactive

Delivery failures never propagate to the caller; challenge bookkeeping is
already persisted by the time a push is sent.

Reference: https://docs.expo.dev/push-notifications/sending-notifications/
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from exponent_server_sdk import (
    DeviceNotRegisteredError,
    PushClient,
    PushMessage,
    PushServerError,
    PushTicketError,
)

from app.core.database import get_supabase_client
from app.services.logger import logger

# Expo's recommended batch size
EXPO_BATCH_SIZE = 100

MAX_RETRIES = 2
INITIAL_RETRY_DELAY = 1  # seconds


def is_valid_expo_token(token: str) -> bool:
    """Check if token is a valid Expo push token format"""
    return token.startswith("ExponentPushToken[") and token.endswith("]")


def _active_tokens(supabase, user_id: str) -> List[Dict[str, Any]]:
    result = (
        supabase.table("device_tokens")
        .select("fcm_token, id")
        .eq("user_id", user_id)
        .eq("is_active", True)
        .execute()
    )
    return [
        row
        for row in result.data or []
        if isinstance(row.get("fcm_token"), str) and is_valid_expo_token(row["fcm_token"])
    ]


def _publish_with_retry(messages: List[PushMessage]):
    for attempt in range(MAX_RETRIES):
        try:
            return PushClient().publish_multiple(messages)
        except PushServerError as exc:
            if attempt < MAX_RETRIES - 1:
                delay = INITIAL_RETRY_DELAY * (2**attempt)
                logger.warning(
                    f"Expo push batch failed, retrying in {delay}s",
                    {"error": str(exc), "attempt": attempt + 1},
                )
                time.sleep(delay)
            else:
                logger.error(
                    "Expo push batch failed permanently", {"error": str(exc)}
                )
        except Exception as exc:
            logger.error("Expo push batch failed", {"error": str(exc)})
            break
    return None


def send_push_to_user_sync(
    user_id: str,
    *,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    notification_type: str = "challenge",
    entity_type: Optional[str] = "challenge",
    entity_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Persist a notification record and deliver it to all active Expo push
    tokens for the user.
    """
    supabase = get_supabase_client()
    notification_id = str(uuid4())

    record = {
        "id": notification_id,
        "user_id": user_id,
        "notification_type": notification_type,
        "title": title,
        "body": body,
        "data": data or {},
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }
    if entity_type and entity_id:
        record["entity_type"] = entity_type
        record["entity_id"] = entity_id

    try:
        supabase.table("notification_history").insert(record).execute()
    except Exception as e:
        logger.warning(
            "Failed to create notification history record",
            {"error": str(e), "user_id": user_id},
        )

    try:
        tokens = _active_tokens(supabase, user_id)
    except Exception as e:
        logger.warning(
            f"Failed to load device tokens for user {user_id}",
            {"error": str(e), "user_id": user_id},
        )
        tokens = []

    if not tokens:
        return {
            "notification_id": notification_id,
            "delivered": False,
            "reason": "no_active_tokens",
            "invalid_tokens": [],
        }

    delivered = False
    invalid_tokens: List[str] = []

    for batch_start in range(0, len(tokens), EXPO_BATCH_SIZE):
        batch = tokens[batch_start : batch_start + EXPO_BATCH_SIZE]
        messages = [
            PushMessage(
                to=row["fcm_token"],
                title=title,
                body=body,
                data={"notification_id": notification_id, **(data or {})},
                sound="default",
                priority="high",
            )
            for row in batch
        ]

        responses = _publish_with_retry(messages)
        if not responses:
            continue

        for token_row, response in zip(batch, responses):
            fcm_token = token_row["fcm_token"]
            try:
                response.validate_response()
                delivered = True
            except DeviceNotRegisteredError:
                logger.warning(
                    f"Device not registered: {fcm_token[:20]}..., marking inactive"
                )
                invalid_tokens.append(fcm_token)
                supabase.table("device_tokens").update({"is_active": False}).eq(
                    "id", token_row["id"]
                ).execute()
            except PushTicketError as exc:
                logger.warning(
                    f"Push ticket error for {fcm_token[:20]}...", {"error": str(exc)}
                )
                invalid_tokens.append(fcm_token)

    return {
        "notification_id": notification_id,
        "delivered": delivered,
        "invalid_tokens": invalid_tokens,
    }


async def send_push_to_user(user_id: str, **kwargs) -> Dict[str, Any]:
    """Async wrapper, never raises."""
    try:
        return send_push_to_user_sync(user_id, **kwargs)
    except Exception as e:
        logger.warning(
            f"Push delivery failed for user {user_id}",
            {"error": str(e), "user_id": user_id},
        )
        return {"delivered": False, "error": str(e)}


async def send_push_to_users(user_ids: Iterable[str], **kwargs) -> Dict[str, Any]:
    """One push per distinct user, to all of that user's devices."""
    results = {}
    for user_id in dict.fromkeys(str(u) for u in user_ids):
        results[user_id] = await send_push_to_user(user_id, **kwargs)
    return results
