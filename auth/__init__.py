"""Authentication module using password credentials and signed access tokens.

This module provides:
1. Account registration and login with hashed passwords
2. Stateless HS256 access tokens carrying the user id
3. Principal lookup for every authenticated request and push connection
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from asyncpg.exceptions import UniqueViolationError
from jose import jwt, JWTError
from werkzeug.security import generate_password_hash, check_password_hash

from database.enums import UserRole
from errors import AuthenticationRequiredError, ConflictError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
SELF_SERVICE_ROLES = (UserRole.USER, UserRole.SELLER)

USER_COLUMNS = '''
    id, email, username, role, avatar_url AS "avatarUrl"
'''

class AuthError(AuthenticationRequiredError):
    """Raised when a credential is missing, malformed or expired."""
    pass

class InvalidCredentialsError(AuthError):
    """Raised when email and password don't match an account."""
    pass

class AccountBlockedError(ForbiddenError):
    """Raised when a blocked account tries to authenticate."""
    pass

class EmailTakenError(ConflictError):
    """Raised when registering an email that already has an account."""
    pass

def hash_password(password: str) -> str:
    return generate_password_hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)

class AuthManager:
    """Issues and verifies access tokens for marketplace accounts."""

    def __init__(self, pool, secret: str, expiry_days: int = 7, activity=None):
        """Initialize auth manager.

        Args:
            pool: Database connection pool
            secret: HS256 signing secret
            expiry_days: Lifetime of issued tokens
            activity: Optional ActivityLog for REGISTER/LOGIN/LOGOUT entries
        """
        self.pool = pool
        self.secret = secret
        self.expiry_days = expiry_days
        self.activity = activity

    def create_token(self, user_id) -> str:
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.expiry_days)
        return jwt.encode(
            {'sub': str(user_id), 'exp': int(expires_at.timestamp())},
            self.secret,
            algorithm=JWT_ALGORITHM
        )

    def decode_token(self, token: str) -> str:
        """Verify a token and return the user id it carries.

        Raises:
            AuthError: If the token is malformed, badly signed or expired
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except JWTError:
            raise AuthError("Invalid or expired token")
        user_id = payload.get('sub')
        if not user_id:
            raise AuthError("Invalid or expired token")
        return user_id

    async def _log(self, action: str, user_id) -> None:
        if self.activity:
            await self.activity.log(action, 'User', entity_id=user_id, user_id=user_id)

    async def register(
        self,
        email: str,
        password: str,
        username: str,
        role: UserRole = UserRole.USER
    ) -> Dict[str, Any]:
        """Create an account and sign the caller in.

        Returns:
            Dict containing:
                - token: Access token for the new account
                - user: Public user fields

        Raises:
            ValidationError: If the role is not self-service
            EmailTakenError: If the email is already registered
        """
        role = UserRole(role)
        if role not in SELF_SERVICE_ROLES:
            raise ValidationError("Role must be USER or SELLER")

        async with self.pool.acquire() as conn:
            existing = await conn.fetchval('SELECT id FROM users WHERE email = $1', email)
            if existing:
                raise EmailTakenError("Email already exists")
            try:
                user = await conn.fetchrow(
                    f'''
                    INSERT INTO users (email, username, password_hash, role)
                    VALUES ($1, $2, $3, $4)
                    RETURNING {USER_COLUMNS}
                    ''',
                    email,
                    username,
                    hash_password(password),
                    role.value
                )
            except UniqueViolationError:
                raise EmailTakenError("Email already exists")

        user = dict(user)
        logger.info(f"Registered {role.value} account {user['id']}")
        await self._log('REGISTER', user['id'])
        return {'token': self.create_token(user['id']), 'user': user}

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Check credentials and issue a token.

        Raises:
            InvalidCredentialsError: If email or password is wrong
            AccountBlockedError: If the account is blocked
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                SELECT {USER_COLUMNS}, password_hash, is_blocked
                FROM users
                WHERE email = $1
                ''',
                email
            )

        if not row or not verify_password(password, row['password_hash']):
            raise InvalidCredentialsError("Wrong email or password")
        if row['is_blocked']:
            raise AccountBlockedError("Account is blocked")

        user = {key: row[key] for key in ('id', 'email', 'username', 'role', 'avatarUrl')}
        await self._log('LOGIN', user['id'])
        return {'token': self.create_token(user['id']), 'user': user}

    async def logout(self, user_id) -> None:
        """Tokens are stateless; logging out only leaves an activity entry."""
        await self._log('LOGOUT', user_id)

    async def get_user(self, user_id) -> Optional[Dict[str, Any]]:
        """Look up the principal for a user id, blocked flag included."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'''
                SELECT {USER_COLUMNS}, is_blocked AS "isBlocked"
                FROM users
                WHERE id = $1
                ''',
                user_id
            )
        return dict(row) if row else None

    async def authenticate(self, token: str, allow_blocked: bool = False) -> Dict[str, Any]:
        """Resolve a bearer token to its principal.

        Raises:
            AuthError: If the token is invalid or the user no longer exists
            AccountBlockedError: If the account is blocked
        """
        user_id = self.decode_token(token)
        try:
            user = await self.get_user(user_id)
        except (ValueError, TypeError):
            raise AuthError("Invalid or expired token")
        if not user:
            raise AuthError("Authentication required")
        if user['isBlocked'] and not allow_blocked:
            raise AccountBlockedError("Account is blocked")
        return user

# Export public interface
__all__ = [
    'AuthManager',
    'AuthError',
    'InvalidCredentialsError',
    'AccountBlockedError',
    'EmailTakenError',
    'hash_password',
    'verify_password',
    'JWT_ALGORITHM'
]
