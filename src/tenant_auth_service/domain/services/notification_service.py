"""Notification Service

Queues outbound emails for a delivery worker and serves in-app
notifications waiting for a user.

Storage Schema:
- tenant:email_outbox -> [email_json, ...]
- tenant:notifications:{organization_id}:{user_id} -> [notification_json, ...]
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class NotificationService:
    """Email queueing and in-app notifications"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

        # Redis key patterns
        self.email_outbox_key = "tenant:email_outbox"
        self.notifications_pattern = "tenant:notifications:{}:{}"

    async def send_email(self, to: str, template: str, data: Optional[Dict[str, Any]] = None) -> str:
        """Queue a templated email

        Returns:
            Queued message id
        """
        message_id = str(uuid.uuid4())
        message = {
            "message_id": message_id,
            "to": to,
            "template": template,
            "data": data or {},
            "queued_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis.rpush(self.email_outbox_key, json.dumps(message))

        logger.info(f"Queued email '{template}' to {to} ({message_id})")
        return message_id

    async def notify(self, user_id: str, organization_id: str, title: str, body: str) -> Dict[str, Any]:
        """Add an in-app notification for a user"""
        notification = {
            "notification_id": str(uuid.uuid4()),
            "title": title,
            "body": body,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "read": False,
        }
        await self.redis.rpush(
            self.notifications_pattern.format(organization_id, user_id), json.dumps(notification)
        )
        return notification

    async def get_pending_notifications(self, user_id: str, organization_id: str) -> List[Dict[str, Any]]:
        """Unread notifications for a user in an organization"""
        items = await self.redis.lrange(self.notifications_pattern.format(organization_id, user_id), 0, -1)
        notifications = [json.loads(item) for item in items]
        return [n for n in notifications if not n.get("read")]
