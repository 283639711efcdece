"""Tests for the HTTP surface: auth boundary, routing and error mapping."""

from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from api import create_app, format_validation_errors
from api.services import Services
from auth import AccountBlockedError, AuthError
from conftest import make_user
from database.enums import Decision
from hub import AUTH_FAILED_CODE, ConnectionHub
from orders import CartEmptyError

MANAGERS = ('auth', 'activity', 'notifications', 'moderation', 'tracks',
            'catalog', 'orders', 'library', 'users')

USERS = {
    'user-token': make_user('USER'),
    'seller-token': make_user('SELLER'),
    'admin-token': make_user('ADMIN'),
    'blocked-token': make_user('USER', blocked=True),
}

def bearer(token):
    return {'Authorization': f'Bearer {token}'}

async def authenticate(token, allow_blocked=False):
    user = USERS.get(token)
    if user is None:
        raise AuthError("Invalid or expired token")
    if user['isBlocked'] and not allow_blocked:
        raise AccountBlockedError("Account is blocked")
    return user

@pytest.fixture
def services(settings):
    services = Services(settings, database=Mock(), cache=Mock())
    for name in MANAGERS:
        setattr(services, name, AsyncMock())
    services.auth.authenticate.side_effect = authenticate
    services.hub = ConnectionHub(services.auth)
    services.database.ping = AsyncMock(return_value=True)
    services.cache.ping = AsyncMock(return_value=True)
    return services

@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings=settings, services=services)) as client:
        yield client

# Authentication boundary

def test_public_catalog_needs_no_token(client, services):
    services.catalog.search_tracks.return_value = {'tracks': []}

    response = client.get('/catalog/tracks', params={'genre': 'Synthwave', 'minPrice': '1.5', 'sort': 'price_asc'})

    assert response.status_code == 200
    assert response.json() == {'tracks': []}
    query = services.catalog.search_tracks.await_args.args[0]
    assert query.genre == 'Synthwave'
    assert query.min_price == Decimal('1.5')
    assert query.sort == 'price_asc'

def test_missing_token(client):
    response = client.get('/cart/')
    assert response.status_code == 401
    assert response.json() == {'message': 'Authentication required'}

def test_invalid_token(client):
    response = client.get('/cart/', headers=bearer('forged'))
    assert response.status_code == 401
    assert response.json() == {'message': 'Invalid or expired token'}

def test_blocked_account_is_forbidden(client):
    response = client.get('/auth/me', headers=bearer('blocked-token'))
    assert response.status_code == 403
    assert response.json() == {'message': 'Account is blocked'}

def test_role_gate(client):
    response = client.get('/admin/users', headers=bearer('user-token'))
    assert response.status_code == 403
    assert response.json() == {'message': 'Access denied'}

    response = client.get('/seller/tracks', headers=bearer('admin-token'))
    assert response.status_code == 403

def test_me_returns_public_fields(client):
    response = client.get('/auth/me', headers=bearer('seller-token'))
    assert response.status_code == 200
    assert set(response.json()['user']) == {'id', 'email', 'username', 'role', 'avatarUrl'}

def test_blocked_user_can_still_log_out(client, services):
    response = client.post('/auth/logout', headers=bearer('blocked-token'))
    assert response.status_code == 200
    services.auth.logout.assert_awaited_once_with(USERS['blocked-token']['id'])

# Error mapping

def test_validation_errors_are_one_line_per_field(client):
    response = client.post('/auth/register', json={'email': 'nope', 'password': '1'})
    assert response.status_code == 400
    lines = response.json()['message'].split('\n')
    assert [line.split(':')[0] for line in lines] == ['email', 'password', 'username']

def test_format_validation_errors_deduplicates():
    errors = [
        {'loc': ('body', 'cardNumber'), 'msg': 'first'},
        {'loc': ('body', 'cardNumber'), 'msg': 'second'},
        {'loc': ('query', 'limit'), 'msg': 'bad'}
    ]
    assert format_validation_errors(errors) == 'cardNumber: first\nlimit: bad'

def test_marketplace_errors_keep_their_status(client, services):
    services.orders.checkout.side_effect = CartEmptyError("Cart is empty")
    payment = {'cardNumber': '4242424242424242', 'cardHolder': 'Ada', 'expiry': '12/29', 'cvv': '123'}

    response = client.post('/cart/checkout', json=payment, headers=bearer('user-token'))

    assert response.status_code == 400
    assert response.json() == {'message': 'Cart is empty'}

def test_malformed_payment_is_rejected_before_checkout(client, services):
    payment = {'cardNumber': '12', 'cardHolder': 'Ada', 'expiry': '12/29', 'cvv': '123'}
    response = client.post('/cart/checkout', json=payment, headers=bearer('user-token'))
    assert response.status_code == 400
    assert response.json()['message'].startswith('cardNumber:')
    services.orders.checkout.assert_not_awaited()

def test_unexpected_errors_are_hidden(settings, services):
    services.library.owned_tracks.side_effect = RuntimeError("connection reset")
    app = create_app(settings=settings, services=services)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get('/library/tracks', headers=bearer('user-token'))
    assert response.status_code == 500
    assert response.json() == {'message': 'Internal server error'}

def test_unknown_route(client):
    response = client.get('/nowhere')
    assert response.status_code == 404
    assert response.json() == {'message': 'Not Found'}

# Endpoints

def test_checkout(client, services):
    order_id = uuid4()
    services.orders.checkout.return_value = {'id': order_id, 'total': Decimal('4.99'),
                                             'items': [], 'skippedTrackIds': []}
    payment = {'cardNumber': '4242 4242 4242 4242', 'cardHolder': 'Ada', 'expiry': '12/29', 'cvv': '123'}

    response = client.post('/cart/checkout', json=payment, headers=bearer('user-token'))

    assert response.status_code == 200
    body = response.json()
    assert body['orderId'] == str(order_id)
    user_id, details = services.orders.checkout.await_args.args
    assert user_id == USERS['user-token']['id']
    assert details.card_number == '4242424242424242'

def test_admin_approves_without_body(client, services):
    request_id = uuid4()
    services.moderation.decide.return_value = {'id': request_id, 'status': 'APPROVED'}

    response = client.post(f'/admin/moderation/tracks/{request_id}/approve', headers=bearer('admin-token'))

    assert response.status_code == 200
    services.moderation.decide.assert_awaited_once_with(
        request_id, USERS['admin-token']['id'], Decision.APPROVE, None
    )

def test_admin_rejects_with_note(client, services):
    request_id = uuid4()
    services.moderation.decide.return_value = {'id': request_id, 'status': 'REJECTED'}

    response = client.post(f'/admin/moderation/tracks/{request_id}/reject',
                           json={'note': 'Low quality'}, headers=bearer('admin-token'))

    assert response.status_code == 200
    assert services.moderation.decide.await_args.args[2:] == (Decision.REJECT, 'Low quality')

def test_admin_review_decision(client, services):
    review_id = uuid4()
    response = client.post(f'/admin/moderation/reviews/{review_id}/approve', headers=bearer('admin-token'))
    assert response.status_code == 200
    assert services.moderation.decide_review.await_args.args[:3] == (
        review_id, USERS['admin-token']['id'], Decision.APPROVE
    )

def test_activity_report_uses_configured_limit(client, services):
    services.activity.recent.return_value = []
    response = client.get('/admin/reports/activity', headers=bearer('admin-token'))
    assert response.json() == {'logs': []}
    services.activity.recent.assert_awaited_once_with(300)

def test_review_submission(client, services):
    track_id = uuid4()
    services.moderation.submit_review.return_value = {'id': uuid4()}

    response = client.post(f'/catalog/tracks/{track_id}/reviews',
                           json={'rating': 6, 'comment': 'Too good'}, headers=bearer('user-token'))
    assert response.status_code == 400

    response = client.post(f'/catalog/tracks/{track_id}/reviews',
                           json={'rating': 5, 'comment': 'Great'}, headers=bearer('user-token'))
    assert response.status_code == 201
    services.moderation.submit_review.assert_awaited_once_with(
        track_id, USERS['user-token']['id'], 5, 'Great'
    )

def test_seller_upload_stores_media(client, services, settings):
    track_id, request_id = uuid4(), uuid4()
    services.tracks.create_track.return_value = {'trackId': track_id, 'moderation': {'id': request_id}}
    form = {'title': 'Night Drive', 'description': 'Synthwave for long roads',
            'genreId': str(uuid4()), 'price': '4.99'}

    response = client.post('/seller/tracks', data=form, headers=bearer('seller-token'),
                           files={'media': ('night drive.mp3', b'ID3 audio', 'audio/mpeg')})

    assert response.status_code == 201
    assert response.json()['moderationId'] == str(request_id)
    media_url = services.tracks.create_track.await_args.kwargs['media_url']
    assert media_url.startswith('/uploads/tracks/')
    assert media_url.endswith('-night-drive.mp3')
    stored = Path(settings['upload_dir']) / 'tracks' / media_url.rsplit('/', 1)[-1]
    assert stored.read_bytes() == b'ID3 audio'

def test_seller_upload_requires_media(client, services):
    form = {'title': 'Night Drive', 'description': 'Synthwave for long roads',
            'genreId': str(uuid4()), 'price': '4.99'}
    response = client.post('/seller/tracks', data=form, headers=bearer('seller-token'))
    assert response.status_code == 400
    assert response.json() == {'message': 'Track media file is required'}
    services.tracks.create_track.assert_not_awaited()

def test_seller_update_requires_a_change(client, services):
    response = client.patch(f'/seller/tracks/{uuid4()}', data={}, headers=bearer('seller-token'))
    assert response.status_code == 400
    assert response.json() == {'message': 'At least one field is required'}

def test_health(client, services):
    response = client.get('/health')
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'healthy'
    assert body['database_status'] == 'connected'
    assert body['websocket_connections'] == 0

def test_health_degraded_when_cache_is_down(client, services):
    services.cache.ping.return_value = False
    body = client.get('/health').json()
    assert body['status'] == 'degraded'
    assert body['cache_status'] == 'unreachable'

# Push channel

def test_websocket_ping_pong(client, services):
    with client.websocket_connect('/ws?token=user-token') as websocket:
        websocket.send_text('ping')
        assert websocket.receive_text() == 'pong'
        assert len(services.hub.registry) == 1

@pytest.mark.parametrize('path', ['/ws', '/ws?token=forged', '/ws?token=blocked-token'])
def test_websocket_rejects_bad_credentials(client, path):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(path) as websocket:
            websocket.receive_text()
    assert exc.value.code == AUTH_FAILED_CODE
