"""Live push connections indexed by user id and by role.

The registry is plain in-memory bookkeeping; the hub owns the socket side:
authenticating an incoming connection, keeping it registered while it is
open and writing messages to whichever connections a recipient has.
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Set

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketState

from errors import MarketplaceError

logger = logging.getLogger(__name__)

AUTH_FAILED_CODE = 4001
INTERNAL_ERROR_CODE = 1011
PING = 'ping'
PONG = 'pong'

_connection_ids = itertools.count(1)

class ConnectionState(str, Enum):
    CONNECTING = 'CONNECTING'
    AUTHENTICATED = 'AUTHENTICATED'
    CLOSED = 'CLOSED'

@dataclass(eq=False)
class Connection:
    """One push connection and the identity it authenticated as."""
    websocket: Any
    user_id: str
    role: str
    state: ConnectionState = ConnectionState.CONNECTING
    id: int = field(default_factory=lambda: next(_connection_ids))
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self) -> bool:
        return (
            self.state == ConnectionState.AUTHENTICATED
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

class ConnectionRegistry:
    """Two indices over live connections: by user id and by role."""

    def __init__(self):
        self._by_user: Dict[str, Set[Connection]] = {}
        self._by_role: Dict[str, Set[Connection]] = {}

    def add(self, connection: Connection) -> None:
        self._by_user.setdefault(connection.user_id, set()).add(connection)
        self._by_role.setdefault(connection.role, set()).add(connection)

    def remove(self, connection: Connection) -> bool:
        """Drop a connection from both indices.

        Returns:
            False if it was not registered
        """
        removed = False
        for index, key in ((self._by_user, connection.user_id), (self._by_role, connection.role)):
            bucket = index.get(key)
            if bucket and connection in bucket:
                bucket.discard(connection)
                removed = True
                if not bucket:
                    del index[key]
        return removed

    def for_user(self, user_id) -> List[Connection]:
        return list(self._by_user.get(str(user_id), ()))

    def for_role(self, role) -> List[Connection]:
        return list(self._by_role.get(_role_key(role), ()))

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_user.values())

def _role_key(role) -> str:
    return role.value if isinstance(role, Enum) else str(role)

class ConnectionHub:
    """Authenticates push connections and delivers messages to them."""

    def __init__(self, auth, registry: ConnectionRegistry = None):
        """Initialize hub.

        Args:
            auth: AuthManager used to resolve the connect-time token
            registry: Connection registry, a fresh one by default
        """
        self.auth = auth
        self.registry = registry if registry is not None else ConnectionRegistry()

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one push connection from accept until it closes."""
        await websocket.accept()

        token = websocket.query_params.get('token')
        if not token:
            await websocket.close(code=AUTH_FAILED_CODE, reason="Authentication required")
            return

        try:
            user = await self.auth.authenticate(token)
        except MarketplaceError as e:
            logger.info(f"Rejected push connection: {e.message}")
            await websocket.close(code=AUTH_FAILED_CODE, reason=e.message)
            return
        except Exception:
            logger.exception("Push connection authentication failed")
            await websocket.close(code=INTERNAL_ERROR_CODE, reason="Internal server error")
            return

        connection = Connection(
            websocket=websocket,
            user_id=str(user['id']),
            role=_role_key(user['role'])
        )
        connection.state = ConnectionState.AUTHENTICATED
        self.registry.add(connection)
        logger.info(f"Push connection {connection.id} opened for user {connection.user_id}")

        try:
            while True:
                message = await websocket.receive_text()
                if message == PING:
                    await websocket.send_text(PONG)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning(f"Push connection {connection.id} failed: {e}")
        finally:
            connection.state = ConnectionState.CLOSED
            self.registry.remove(connection)
            logger.info(f"Push connection {connection.id} closed")

    async def _deliver(self, connections: List[Connection], message: Dict[str, Any]) -> int:
        payload = jsonable_encoder(message)
        delivered = 0
        for connection in connections:
            if not connection.is_open:
                continue
            try:
                await connection.websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping push connection {connection.id}: {e}")
                connection.state = ConnectionState.CLOSED
                self.registry.remove(connection)
        return delivered

    async def send_to_user(self, user_id, message: Dict[str, Any]) -> int:
        """Write a message to every open connection of a user.

        Returns:
            Number of connections written to
        """
        return await self._deliver(self.registry.for_user(user_id), message)

    async def send_to_role(self, role, message: Dict[str, Any]) -> int:
        """Write a message to every open connection whose role matched at connect time."""
        return await self._deliver(self.registry.for_role(role), message)


__all__ = [
    'Connection',
    'ConnectionState',
    'ConnectionRegistry',
    'ConnectionHub',
    'AUTH_FAILED_CODE',
    'INTERNAL_ERROR_CODE'
]
