"""Tests for the push connection hub."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from auth import AccountBlockedError, AuthError
from conftest import DISCONNECT, FakeWebSocket, make_user, wait_for
from hub import (
    AUTH_FAILED_CODE,
    INTERNAL_ERROR_CODE,
    Connection,
    ConnectionHub,
    ConnectionRegistry,
    ConnectionState
)

@pytest.fixture
def auth():
    return AsyncMock()

@pytest.fixture
def hub(auth):
    return ConnectionHub(auth)

async def open_connection(hub, auth, user, **ws_kwargs):
    auth.authenticate.return_value = user
    websocket = FakeWebSocket(token='token', **ws_kwargs)
    expected = len(hub.registry) + 1
    task = asyncio.create_task(hub.handle(websocket))
    assert await wait_for(lambda: len(hub.registry) == expected)
    return websocket, task

async def disconnect(websocket, task):
    await websocket.incoming.put(DISCONNECT)
    await asyncio.wait_for(task, timeout=1)

def test_registry_indexes_by_user_and_role():
    registry = ConnectionRegistry()
    a = Connection(websocket=FakeWebSocket(), user_id='u1', role='ADMIN')
    b = Connection(websocket=FakeWebSocket(), user_id='u1', role='ADMIN')
    c = Connection(websocket=FakeWebSocket(), user_id='u2', role='USER')
    for connection in (a, b, c):
        registry.add(connection)

    assert len(registry) == 3
    assert set(registry.for_user('u1')) == {a, b}
    assert set(registry.for_role('ADMIN')) == {a, b}

    assert registry.remove(a) is True
    assert registry.remove(a) is False
    registry.remove(b)
    assert registry.for_user('u1') == []
    assert registry.for_role('ADMIN') == []
    assert len(registry) == 1

@pytest.mark.asyncio
async def test_missing_token_is_rejected(hub, auth):
    websocket = FakeWebSocket()
    await hub.handle(websocket)
    assert websocket.close_code == AUTH_FAILED_CODE
    auth.authenticate.assert_not_awaited()
    assert len(hub.registry) == 0

@pytest.mark.asyncio
@pytest.mark.parametrize('error', [
    AuthError("Invalid or expired token"),
    AccountBlockedError("Account is blocked")
])
async def test_bad_or_blocked_token_is_rejected(hub, auth, error):
    auth.authenticate.side_effect = error
    websocket = FakeWebSocket(token='token')

    await hub.handle(websocket)

    assert websocket.close_code == AUTH_FAILED_CODE
    assert websocket.close_reason == error.message
    assert len(hub.registry) == 0

@pytest.mark.asyncio
async def test_failed_token_lookup_closes_connection(hub, auth):
    auth.authenticate.side_effect = ConnectionError("database unreachable")
    websocket = FakeWebSocket(token='token')

    await hub.handle(websocket)

    assert websocket.close_code == INTERNAL_ERROR_CODE
    assert len(hub.registry) == 0

@pytest.mark.asyncio
async def test_authenticated_connection_receives_pushes(hub, auth):
    user = make_user()
    websocket, task = await open_connection(hub, auth, user)

    delivered = await hub.send_to_user(user['id'], {'type': 'notification', 'payload': {'message': 'hi'}})

    assert delivered == 1
    assert websocket.sent == [{'type': 'notification', 'payload': {'message': 'hi'}}]
    await disconnect(websocket, task)
    assert len(hub.registry) == 0

@pytest.mark.asyncio
async def test_ping_gets_pong(hub, auth):
    websocket, task = await open_connection(hub, auth, make_user())
    await websocket.incoming.put('ping')
    assert await wait_for(lambda: websocket.sent == ['pong'])
    await disconnect(websocket, task)

@pytest.mark.asyncio
async def test_send_to_role_reaches_every_admin_session(hub, auth):
    admin = make_user('ADMIN')
    other_admin = make_user('ADMIN')
    buyer = make_user()
    first, first_task = await open_connection(hub, auth, admin)
    second, second_task = await open_connection(hub, auth, admin)
    third, third_task = await open_connection(hub, auth, other_admin)
    buyer_ws, buyer_task = await open_connection(hub, auth, buyer)

    delivered = await hub.send_to_role('ADMIN', {'type': 'notification', 'payload': {}})

    assert delivered == 3
    assert buyer_ws.sent == []
    for websocket, task in ((first, first_task), (second, second_task),
                            (third, third_task), (buyer_ws, buyer_task)):
        await disconnect(websocket, task)

@pytest.mark.asyncio
async def test_failed_send_drops_connection(hub, auth):
    user = make_user()
    websocket, task = await open_connection(hub, auth, user, fail_send=True)

    delivered = await hub.send_to_user(user['id'], {'type': 'notification', 'payload': {}})

    assert delivered == 0
    assert hub.registry.for_user(user['id']) == []
    await disconnect(websocket, task)

@pytest.mark.asyncio
async def test_closed_connections_are_skipped(hub):
    websocket = FakeWebSocket()
    await websocket.accept()
    connection = Connection(websocket=websocket, user_id='u1', role='USER',
                            state=ConnectionState.CLOSED)
    hub.registry.add(connection)

    assert await hub.send_to_user('u1', {'type': 'notification'}) == 0
    assert websocket.sent == []

@pytest.mark.asyncio
async def test_send_to_user_without_connections(hub):
    assert await hub.send_to_user('nobody', {'type': 'notification'}) == 0
