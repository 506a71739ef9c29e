"""Analytics Service

Records product analytics events for later export.

Storage Schema:
- tenant:analytics_events -> [event_json, ...]
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Append-only analytics event log"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client
        self.events_key = "tenant:analytics_events"

    async def track(self, event: str, user_id: Optional[str], properties: Optional[Dict[str, Any]] = None) -> None:
        record = {
            "event": event,
            "user_id": user_id,
            "properties": properties or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis.rpush(self.events_key, json.dumps(record))
        logger.debug(f"Tracked analytics event '{event}' for user {user_id}")
