"""Tests for cart and checkout."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pydantic
import pytest

from orders import (
    CartEmptyError,
    CartTrackNotFoundError,
    NothingPurchasableError,
    OrderManager,
    PaymentDetails,
    select_purchasable
)

BUYER_ID = uuid4()

PAYMENT = PaymentDetails(
    cardNumber='4242 4242 4242 4242',
    cardHolder='Ada Lovelace',
    expiry='12/29',
    cvv='123'
)

def cart_row(status='APPROVED', price='4.99', title='Track'):
    return {
        'id': uuid4(),
        'track_id': uuid4(),
        'title': title,
        'status': status,
        'price': Decimal(price)
    }

@pytest.fixture
def notifier():
    return AsyncMock()

@pytest.fixture
def activity():
    return AsyncMock()

@pytest.fixture
def manager(pool, notifier, activity):
    return OrderManager(pool, notifier=notifier, activity=activity)

def respond_order(conn, total):
    order_id = uuid4()
    conn.respond('INSERT INTO orders', {
        'id': order_id,
        'total': total,
        'createdAt': datetime.now(timezone.utc)
    })
    return order_id

def test_select_purchasable_splits_and_sums():
    rows = [cart_row(price='1.50'), cart_row('PENDING', '9.00'), cart_row(price='2.25'), cart_row('ARCHIVED')]
    valid, skipped, total = select_purchasable(rows)
    assert valid == [rows[0], rows[2]]
    assert skipped == [rows[1], rows[3]]
    assert total == Decimal('3.75')

def test_payment_details_normalise_card_number():
    assert PAYMENT.card_number == '4242424242424242'

@pytest.mark.parametrize('field,value', [
    ('cardNumber', '1234'),
    ('cardNumber', 'abcd efgh ijkl'),
    ('expiry', '13/30'),
    ('cvv', '12'),
    ('cardHolder', '')
])
def test_payment_details_reject_malformed_fields(field, value):
    data = {'cardNumber': '4242424242424242', 'cardHolder': 'Ada', 'expiry': '01/30', 'cvv': '999'}
    data[field] = value
    with pytest.raises(pydantic.ValidationError):
        PaymentDetails(**data)

@pytest.mark.asyncio
async def test_checkout_buys_only_approved_tracks(manager, conn, notifier, activity):
    good_a = cart_row(price='4.99', title='A')
    gone = cart_row('ARCHIVED', '3.00', title='B')
    good_b = cart_row(price='1.01', title='C')
    conn.respond('FROM cart_items c', [good_a, gone, good_b])
    order_id = respond_order(conn, Decimal('6.00'))

    order = await manager.checkout(BUYER_ID, PAYMENT)

    assert conn.commits == 1
    assert 'FOR UPDATE OF c' in conn.queries('FROM cart_items c')[0][1]

    _, _, args = conn.queries('INSERT INTO orders')[0]
    assert args == (BUYER_ID, Decimal('6.00'))

    _, _, items = conn.queries('INSERT INTO order_items')[0]
    assert items == [(order_id, good_a['track_id'], Decimal('4.99')),
                     (order_id, good_b['track_id'], Decimal('1.01'))]

    _, query, grants = conn.queries('INSERT INTO library_items')[0]
    assert 'ON CONFLICT (user_id, track_id) DO NOTHING' in query
    assert grants == [(BUYER_ID, good_a['track_id'], order_id),
                      (BUYER_ID, good_b['track_id'], order_id)]

    _, _, args = conn.queries('DELETE FROM cart_items')[0]
    assert args == (BUYER_ID, [good_a['track_id'], good_b['track_id']])

    assert order['id'] == order_id
    assert [item['title'] for item in order['items']] == ['A', 'C']
    assert order['skippedTrackIds'] == [gone['track_id']]

    user_id, _, metadata = notifier.notify_user.await_args.args
    assert user_id == BUYER_ID
    assert metadata['targetPath'] == '/library'
    assert metadata['orderId'] == order_id
    action = activity.log.await_args.args[0]
    assert action == 'CHECKOUT'
    assert activity.log.await_args.kwargs['details'] == {'total': 6.0}

@pytest.mark.asyncio
async def test_checkout_empty_cart(manager, conn, notifier):
    with pytest.raises(CartEmptyError) as exc:
        await manager.checkout(BUYER_ID, PAYMENT)
    assert exc.value.message == "Cart is empty"
    assert conn.rollbacks == 1
    assert conn.queries('INSERT INTO orders') == []
    notifier.notify_user.assert_not_awaited()

@pytest.mark.asyncio
async def test_checkout_with_nothing_purchasable(manager, conn):
    conn.respond('FROM cart_items c', [cart_row('PENDING'), cart_row('REJECTED')])

    with pytest.raises(NothingPurchasableError) as exc:
        await manager.checkout(BUYER_ID, PAYMENT)

    assert exc.value.message == "No available tracks for purchase"
    assert conn.rollbacks == 1
    assert conn.queries('INSERT INTO orders') == []
    assert conn.queries('DELETE FROM cart_items') == []

@pytest.mark.asyncio
async def test_checkout_rolls_back_when_a_write_fails(manager, conn, notifier):
    conn.respond('FROM cart_items c', [cart_row()])
    respond_order(conn, Decimal('4.99'))
    conn.respond('INSERT INTO library_items', RuntimeError("disk full"))

    with pytest.raises(RuntimeError):
        await manager.checkout(BUYER_ID, PAYMENT)

    assert conn.commits == 0
    assert conn.rollbacks == 1
    assert conn.queries('DELETE FROM cart_items') == []
    notifier.notify_user.assert_not_awaited()

@pytest.mark.asyncio
async def test_checkout_survives_notification_failure(manager, conn, notifier):
    notifier.notify_user.side_effect = RuntimeError("push down")
    conn.respond('FROM cart_items c', [cart_row()])
    respond_order(conn, Decimal('4.99'))

    order = await manager.checkout(BUYER_ID, PAYMENT)

    assert conn.commits == 1
    assert len(order['items']) == 1

@pytest.mark.asyncio
async def test_add_to_cart_is_idempotent(manager, conn, activity):
    track_id = uuid4()
    conn.respond('SELECT id FROM tracks', track_id, times=None)

    await manager.add_to_cart(BUYER_ID, track_id)
    await manager.add_to_cart(BUYER_ID, track_id)

    inserts = conn.queries('INSERT INTO cart_items')
    assert len(inserts) == 2
    assert all('ON CONFLICT (user_id, track_id) DO NOTHING' in query for _, query, _ in inserts)
    assert activity.log.await_args.args[0] == 'ADD_TO_CART'

@pytest.mark.asyncio
async def test_add_unavailable_track_to_cart(manager):
    with pytest.raises(CartTrackNotFoundError):
        await manager.add_to_cart(BUYER_ID, uuid4())

@pytest.mark.asyncio
async def test_get_cart_totals_current_prices(manager, conn):
    conn.respond('FROM cart_items c', [
        {'id': uuid4(), 'trackId': uuid4(), 'title': 'A', 'price': Decimal('1.10'), 'status': 'APPROVED'},
        {'id': uuid4(), 'trackId': uuid4(), 'title': 'B', 'price': Decimal('2.20'), 'status': 'ARCHIVED'}
    ])
    cart = await manager.get_cart(BUYER_ID)
    assert len(cart['items']) == 2
    assert cart['total'] == Decimal('3.30')

@pytest.mark.asyncio
async def test_sales_report_totals(manager, conn):
    conn.respond('FROM orders o', [
        {'id': uuid4(), 'total': Decimal('5.00'), 'items': []},
        {'id': uuid4(), 'total': Decimal('2.50'), 'items': []}
    ])
    report = await manager.sales_report()
    assert report['totalOrders'] == 2
    assert report['totalRevenue'] == Decimal('7.50')
