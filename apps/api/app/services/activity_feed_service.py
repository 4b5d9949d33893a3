"""
Activity Feed Service

Writes workspace feed records for challenge events. A failed write is
logged and dropped: by the time an event is emitted, the challenge update it
describes is already persisted.
"""

from typing import Any, Dict, Optional

from app.core.database import get_supabase_client
from app.models.challenge import ActivityType
from app.services.logger import logger

ACTIVITIES_TABLE = "activities"


class ActivityFeedService:
    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def record(
        self,
        workspace_id: str,
        user_id: str,
        activity_type: ActivityType,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        activity = {
            "workspace_id": str(workspace_id),
            "user_id": str(user_id),
            "type": ActivityType(activity_type).value,
            "data": data or {},
            "visibility": "workspace",
        }
        try:
            self.client.table(ACTIVITIES_TABLE).insert(activity).execute()
            return True
        except Exception as e:
            logger.warning(
                f"Failed to record {activity['type']} activity",
                {"error": str(e), "workspace_id": workspace_id, "user_id": user_id},
            )
            return False


# Global instance
activity_feed_service = ActivityFeedService()
