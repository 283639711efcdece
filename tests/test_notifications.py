"""Tests for notification fan-out."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from database.enums import UserRole
from notifications import NotificationManager, NotificationMetadata, NotificationNotFoundError

def stored(user_id, message, metadata):
    return {
        'id': uuid4(),
        'message': message,
        'isRead': False,
        'createdAt': datetime.now(timezone.utc),
        'metadata': metadata
    }

@pytest.fixture
def hub():
    return AsyncMock()

@pytest.fixture
def manager(pool, hub):
    return NotificationManager(pool, hub, limit=30)

def test_metadata_keeps_extra_keys_and_camel_case():
    track_id = uuid4()
    metadata = NotificationMetadata(targetPath='/seller', trackId=track_id, note='ok')
    assert metadata.to_json() == {'targetPath': '/seller', 'trackId': str(track_id), 'note': 'ok'}

def test_metadata_drops_missing_target():
    assert NotificationMetadata.model_validate({'orderId': 'x'}).to_json() == {'orderId': 'x'}

@pytest.mark.asyncio
async def test_notify_user_stores_before_pushing(manager, conn, hub):
    user_id = uuid4()
    order = []
    conn.respond('INSERT INTO notifications', lambda *args: order.append('insert') or stored(*args))
    hub.send_to_user.side_effect = lambda *args: order.append('push')

    notification = await manager.notify_user(user_id, 'Hello', {'targetPath': '/library'})

    assert order == ['insert', 'push']
    _, _, args = conn.queries('INSERT INTO notifications')[0]
    assert args == (user_id, 'Hello', {'targetPath': '/library'})
    assert notification['isRead'] is False
    pushed_to, message = hub.send_to_user.await_args.args
    assert pushed_to == user_id
    assert message == {'type': 'notification', 'payload': notification}

@pytest.mark.asyncio
async def test_push_failure_keeps_stored_notification(manager, conn, hub):
    conn.respond('INSERT INTO notifications', stored)
    hub.send_to_user.side_effect = RuntimeError("socket closed")

    notification = await manager.notify_user(uuid4(), 'Hello')

    assert notification['message'] == 'Hello'
    assert len(conn.queries('INSERT INTO notifications')) == 1

@pytest.mark.asyncio
async def test_notify_user_without_hub(pool, conn):
    conn.respond('INSERT INTO notifications', stored)
    manager = NotificationManager(pool)
    notification = await manager.notify_user(uuid4(), 'Offline')
    assert notification['message'] == 'Offline'

@pytest.mark.asyncio
async def test_notify_role_isolates_failed_recipients(manager, conn, hub):
    admins = [uuid4(), uuid4(), uuid4()]
    broken = admins[1]

    def insert(user_id, message, metadata):
        if user_id == broken:
            raise RuntimeError("constraint violated")
        return stored(user_id, message, metadata)

    conn.respond('SELECT id FROM users', [{'id': admin} for admin in admins])
    conn.respond('INSERT INTO notifications', insert, times=None)

    sent = await manager.notify_role(UserRole.ADMIN, 'New track waiting', {'targetPath': '/admin?tab=tracks'})

    assert sent == 2
    _, query, args = conn.queries('SELECT id FROM users')[0]
    assert args == ('ADMIN',)
    assert 'NOT is_blocked' in query
    pushed = {call.args[0] for call in hub.send_to_user.await_args_list}
    assert pushed == {admins[0], admins[2]}

@pytest.mark.asyncio
async def test_notify_role_without_recipients(manager, hub):
    assert await manager.notify_role(UserRole.ADMIN, 'Nobody home') == 0
    hub.send_to_user.assert_not_awaited()

@pytest.mark.asyncio
async def test_list_notifications_uses_default_limit(manager, conn):
    user_id = uuid4()
    await manager.list_notifications(user_id)
    _, query, args = conn.queries('FROM notifications')[0]
    assert 'ORDER BY created_at DESC' in query
    assert args == (user_id, 30)

@pytest.mark.asyncio
async def test_mark_read_is_scoped_to_owner(manager, conn):
    with pytest.raises(NotificationNotFoundError):
        await manager.mark_read(uuid4(), uuid4())
    _, query, _ = conn.queries('UPDATE notifications')[0]
    assert 'user_id = $2' in query

@pytest.mark.asyncio
async def test_mark_all_read_counts_updated_rows(manager, conn):
    conn.respond('UPDATE notifications', 'UPDATE 3')
    assert await manager.mark_all_read(uuid4()) == 3
