"""User profiles and admin account management."""

import logging
from typing import Any, Dict, List, Optional

from auth import hash_password, verify_password
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = '''
    id, email, username, role,
    avatar_url AS "avatarUrl",
    created_at AS "createdAt"
'''

class UserNotFoundError(NotFoundError):
    pass

class WrongPasswordError(ValidationError):
    pass

class SelfBlockError(ValidationError):
    pass

class UserManager:
    """Profile reads and updates, password changes and blocking."""

    def __init__(self, pool, activity=None):
        self.pool = pool
        self.activity = activity

    async def _log(self, action: str, entity_id, user_id) -> None:
        if self.activity is not None:
            await self.activity.log(action, 'User', entity_id=entity_id, user_id=user_id)

    async def get_profile(self, user_id) -> Dict[str, Any]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'SELECT {PROFILE_COLUMNS} FROM users WHERE id = $1',
                user_id
            )
        if not row:
            raise UserNotFoundError("User not found")
        return dict(row)

    async def update_profile(
        self,
        user_id,
        username: str,
        avatar_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Change the username and, when a new one was uploaded, the avatar."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                UPDATE users
                SET username = $2, avatar_url = COALESCE($3, avatar_url)
                WHERE id = $1
                RETURNING {PROFILE_COLUMNS}
                ''',
                user_id,
                username,
                avatar_url
            )
        if not row:
            raise UserNotFoundError("User not found")
        await self._log('UPDATE_PROFILE', user_id, user_id)
        return dict(row)

    async def change_password(self, user_id, current_password: str, new_password: str) -> None:
        """Replace the password after checking the current one.

        Raises:
            WrongPasswordError: If the current password doesn't match
        """
        async with self.pool.acquire() as conn:
            password_hash = await conn.fetchval(
                'SELECT password_hash FROM users WHERE id = $1',
                user_id
            )
            if password_hash is None:
                raise UserNotFoundError("User not found")
            if not verify_password(current_password, password_hash):
                raise WrongPasswordError("Current password is wrong")
            await conn.execute(
                'UPDATE users SET password_hash = $2 WHERE id = $1',
                user_id,
                hash_password(new_password)
            )
        await self._log('UPDATE_PASSWORD', user_id, user_id)

    async def list_users(self) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    id, email, username, role,
                    is_blocked AS "isBlocked",
                    created_at AS "createdAt"
                FROM users
                ORDER BY created_at DESC
                '''
            )
        return [dict(row) for row in rows]

    async def set_blocked(self, admin_id, user_id, blocked: bool) -> Dict[str, Any]:
        """Block or unblock an account.

        Blocked accounts fail authentication on every request and on the
        push channel; their tokens stay valid but unusable.

        Raises:
            SelfBlockError: If an admin tries to block themselves
            UserNotFoundError: If the account doesn't exist
        """
        if blocked and str(admin_id) == str(user_id):
            raise SelfBlockError("You cannot block yourself")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE users SET is_blocked = $2
                WHERE id = $1
                RETURNING id, email, username, role, is_blocked AS "isBlocked"
                ''',
                user_id,
                blocked
            )
        if not row:
            raise UserNotFoundError("User not found")

        logger.info(f"User {user_id} {'blocked' if blocked else 'unblocked'} by {admin_id}")
        action = 'ADMIN_BLOCK_USER' if blocked else 'ADMIN_UNBLOCK_USER'
        await self._log(action, user_id, admin_id)
        return dict(row)


__all__ = ['UserManager', 'UserNotFoundError', 'WrongPasswordError', 'SelfBlockError']
