"""Append-only audit trail of user and admin actions."""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ACTIONS = frozenset({
    'REGISTER',
    'LOGIN',
    'LOGOUT',
    'UPDATE_PROFILE',
    'UPDATE_PASSWORD',
    'ADD_TO_CART',
    'CHECKOUT',
    'CREATE_REVIEW',
    'SELLER_CREATE_TRACK',
    'SELLER_UPDATE_TRACK_REQUEST',
    'SELLER_DELETE_TRACK_REQUEST',
    'ADMIN_APPROVE_TRACK_MODERATION',
    'ADMIN_REJECT_TRACK_MODERATION',
    'ADMIN_APPROVE_REVIEW',
    'ADMIN_REJECT_REVIEW',
    'ADMIN_BLOCK_USER',
    'ADMIN_UNBLOCK_USER',
})

class ActivityLog:
    """Writes and reads activity_logs rows."""

    def __init__(self, pool):
        self.pool = pool

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id=None,
        user_id=None,
        details: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Record one action.

        Best effort: the action it describes has already happened, so a
        failed insert is logged and reported as False instead of raised.
        """
        if action not in ACTIONS:
            logger.warning(f"Unknown activity action {action}")
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    '''
                    INSERT INTO activity_logs (action, entity_type, entity_id, user_id, details)
                    VALUES ($1, $2, $3, $4, $5)
                    ''',
                    action,
                    entity_type,
                    str(entity_id) if entity_id is not None else None,
                    user_id,
                    details
                )
            return True
        except Exception as e:
            logger.error(f"Failed to record activity {action}: {e}")
            return False

    async def recent(self, limit: int = 300) -> List[Dict[str, Any]]:
        """Latest entries first, each with its actor when there is one."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    a.id,
                    a.action,
                    a.entity_type AS "entityType",
                    a.entity_id AS "entityId",
                    a.details,
                    a.created_at AS "createdAt",
                    CASE WHEN u.id IS NULL THEN NULL ELSE json_build_object(
                        'id', u.id,
                        'username', u.username,
                        'email', u.email,
                        'role', u.role
                    ) END AS "user"
                FROM activity_logs a
                LEFT JOIN users u ON u.id = a.user_id
                ORDER BY a.created_at DESC
                LIMIT $1
                ''',
                limit
            )
        return [dict(row) for row in rows]


__all__ = ['ActivityLog', 'ACTIONS']
