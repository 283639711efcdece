"""Notification fan-out.

Every notification is stored first and pushed second: the row is the
durable record, the push over the connection hub is a best-effort hint
for sessions that happen to be online.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from errors import NotFoundError

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = 'notification'

NOTIFICATION_COLUMNS = '''
    id, message, is_read AS "isRead", created_at AS "createdAt", metadata
'''

class NotificationMetadata(BaseModel):
    """Navigation target plus any extra keys the sender wants to attach."""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    target_path: Optional[str] = Field(default=None, alias='targetPath')

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

class NotificationNotFoundError(NotFoundError):
    """Raised when a notification doesn't exist or isn't the caller's."""
    pass

MetadataInput = Union[NotificationMetadata, Dict[str, Any], None]

def _metadata_json(metadata: MetadataInput) -> Optional[Dict[str, Any]]:
    if metadata is None:
        return None
    if not isinstance(metadata, NotificationMetadata):
        metadata = NotificationMetadata.model_validate(metadata)
    return metadata.to_json()

class NotificationManager:
    """Stores notifications and pushes them to live connections."""

    def __init__(self, pool, hub=None, limit: int = 30):
        """Initialize notification manager.

        Args:
            pool: Database connection pool
            hub: ConnectionHub used for live delivery, optional
            limit: Default number of notifications returned by list_notifications
        """
        self.pool = pool
        self.hub = hub
        self.limit = limit

    async def notify_user(self, user_id, message: str, metadata: MetadataInput = None) -> Dict[str, Any]:
        """Persist one unread notification, then push it to the user's sessions.

        Returns:
            The stored notification
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                INSERT INTO notifications (user_id, message, metadata)
                VALUES ($1, $2, $3)
                RETURNING {NOTIFICATION_COLUMNS}
                ''',
                user_id,
                message,
                _metadata_json(metadata)
            )
        notification = dict(row)

        if self.hub is not None:
            try:
                await self.hub.send_to_user(
                    user_id,
                    {'type': NOTIFICATION_TYPE, 'payload': notification}
                )
            except Exception as e:
                logger.warning(f"Failed to push notification {notification['id']}: {e}")

        return notification

    async def notify_role(self, role, message: str, metadata: MetadataInput = None) -> int:
        """Notify every non-blocked user holding a role.

        Recipients are independent: one failure is logged and the rest
        still get their notification.

        Returns:
            Number of recipients notified
        """
        role_value = getattr(role, 'value', role)
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT id FROM users WHERE role = $1 AND NOT is_blocked',
                role_value
            )

        results = await asyncio.gather(
            *(self.notify_user(row['id'], message, metadata) for row in rows),
            return_exceptions=True
        )
        sent = 0
        for row, result in zip(rows, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to notify user {row['id']}: {result}")
            else:
                sent += 1
        return sent

    async def list_notifications(self, user_id, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest notifications of a user first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT {NOTIFICATION_COLUMNS}
                FROM notifications
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                ''',
                user_id,
                limit or self.limit
            )
        return [dict(row) for row in rows]

    async def mark_read(self, notification_id, user_id) -> Dict[str, Any]:
        """Mark one of the caller's notifications read.

        Raises:
            NotificationNotFoundError: If the id doesn't belong to the caller
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                UPDATE notifications
                SET is_read = true
                WHERE id = $1 AND user_id = $2
                RETURNING {NOTIFICATION_COLUMNS}
                ''',
                notification_id,
                user_id
            )
        if not row:
            raise NotificationNotFoundError("Notification not found")
        return dict(row)

    async def mark_all_read(self, user_id) -> int:
        """Mark every unread notification of a user read.

        Returns:
            Number of notifications flipped
        """
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                '''
                UPDATE notifications
                SET is_read = true
                WHERE user_id = $1 AND NOT is_read
                ''',
                user_id
            )
        return int(result.split()[-1])


__all__ = [
    'NotificationManager',
    'NotificationMetadata',
    'NotificationNotFoundError',
    'NOTIFICATION_TYPE'
]
