"""Orders module for the cart, checkout and order history.

Checkout is one transaction: the buyer's cart rows are locked, tracks
that are no longer APPROVED are skipped and stay in the cart, and the
order, its items, the library grants and the removal of the purchased
cart rows commit together or not at all.
"""
import logging
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.enums import TrackStatus
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

LIBRARY_PATH = '/library'
EXPIRY_PATTERN = re.compile(r'^(0[1-9]|1[0-2])/?(\d{2}|\d{4})$')

class CartEmptyError(ValidationError):
    """Raised when checking out an empty cart."""
    pass

class NothingPurchasableError(ValidationError):
    """Raised when no track in the cart is still APPROVED."""
    pass

class CartTrackNotFoundError(NotFoundError):
    pass

class PaymentDetails(BaseModel):
    """Card fields checked for shape only; never stored or charged."""
    model_config = ConfigDict(populate_by_name=True)

    card_number: str = Field(alias='cardNumber', min_length=1)
    card_holder: str = Field(alias='cardHolder', min_length=1)
    expiry: str = Field(min_length=1)
    cvv: str = Field(min_length=1)

    @field_validator('card_number')
    @classmethod
    def check_card_number(cls, value: str) -> str:
        digits = value.replace(' ', '').replace('-', '')
        if not digits.isdigit() or not 12 <= len(digits) <= 19:
            raise ValueError('card number must contain 12 to 19 digits')
        return digits

    @field_validator('expiry')
    @classmethod
    def check_expiry(cls, value: str) -> str:
        if not EXPIRY_PATTERN.match(value.strip()):
            raise ValueError('expiry must look like MM/YY')
        return value.strip()

    @field_validator('cvv')
    @classmethod
    def check_cvv(cls, value: str) -> str:
        if not value.isdigit() or len(value) not in (3, 4):
            raise ValueError('cvv must be 3 or 4 digits')
        return value

def select_purchasable(rows: Iterable) -> Tuple[List[Any], List[Any], Decimal]:
    """Split cart rows into purchasable and skipped ones.

    Returns:
        Tuple of (valid rows, skipped rows, total of valid prices)
    """
    valid = []
    skipped = []
    for row in rows:
        if row['status'] == TrackStatus.APPROVED.value:
            valid.append(row)
        else:
            skipped.append(row)
    total = sum((Decimal(row['price']) for row in valid), Decimal('0'))
    return valid, skipped, total

class OrderManager:
    """Manages cart contents, checkout and order reporting."""

    def __init__(self, pool, notifier=None, activity=None) -> None:
        """Initialize order manager.

        Args:
            pool: Database connection pool
            notifier: NotificationManager for the purchase confirmation
            activity: ActivityLog
        """
        self.pool = pool
        self.notifier = notifier
        self.activity = activity

    async def get_cart(self, user_id) -> Dict[str, Any]:
        """Cart items newest first and their current total."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    c.id,
                    t.id AS "trackId",
                    t.title,
                    t.author_name AS "authorName",
                    t.price,
                    t.cover_url AS "coverUrl",
                    t.status
                FROM cart_items c
                JOIN tracks t ON t.id = c.track_id
                WHERE c.user_id = $1
                ORDER BY c.created_at DESC
                ''',
                user_id
            )
        items = [dict(row) for row in rows]
        total = sum((item['price'] for item in items), Decimal('0'))
        return {'items': items, 'total': total}

    async def add_to_cart(self, user_id, track_id) -> None:
        """Put an approved track in the cart; adding it twice is a no-op.

        Raises:
            CartTrackNotFoundError: If the track isn't APPROVED
        """
        async with self.pool.acquire() as conn:
            track_id = await conn.fetchval(
                'SELECT id FROM tracks WHERE id = $1 AND status = $2',
                track_id,
                TrackStatus.APPROVED.value
            )
            if not track_id:
                raise CartTrackNotFoundError("Track not found")
            await conn.execute(
                '''
                INSERT INTO cart_items (user_id, track_id)
                VALUES ($1, $2)
                ON CONFLICT (user_id, track_id) DO NOTHING
                ''',
                user_id,
                track_id
            )
        if self.activity is not None:
            await self.activity.log('ADD_TO_CART', 'Track', entity_id=track_id, user_id=user_id)

    async def remove_from_cart(self, user_id, track_id) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM cart_items WHERE user_id = $1 AND track_id = $2',
                user_id,
                track_id
            )
        return not result.endswith(' 0')

    async def checkout(self, user_id, payment: PaymentDetails) -> Dict[str, Any]:
        """Buy every purchasable track in the cart.

        Args:
            user_id: Buyer
            payment: Card details, already shape-checked and discarded here

        Returns:
            The created order with its items and the ids of skipped tracks

        Raises:
            CartEmptyError: If the cart has no items
            NothingPurchasableError: If no cart track is still APPROVED
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    '''
                    SELECT c.id, c.track_id, t.title, t.status, t.price
                    FROM cart_items c
                    JOIN tracks t ON t.id = c.track_id
                    WHERE c.user_id = $1
                    ORDER BY c.created_at ASC
                    FOR UPDATE OF c
                    ''',
                    user_id
                )
                if not rows:
                    raise CartEmptyError("Cart is empty")

                valid, skipped, total = select_purchasable(rows)
                if not valid:
                    raise NothingPurchasableError("No available tracks for purchase")

                order = await conn.fetchrow(
                    '''
                    INSERT INTO orders (user_id, total)
                    VALUES ($1, $2)
                    RETURNING id, total, created_at AS "createdAt"
                    ''',
                    user_id,
                    total
                )
                await conn.executemany(
                    'INSERT INTO order_items (order_id, track_id, price) VALUES ($1, $2, $3)',
                    [(order['id'], row['track_id'], row['price']) for row in valid]
                )
                await conn.executemany(
                    '''
                    INSERT INTO library_items (user_id, track_id, source_order_id)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, track_id) DO NOTHING
                    ''',
                    [(user_id, row['track_id'], order['id']) for row in valid]
                )
                await conn.execute(
                    'DELETE FROM cart_items WHERE user_id = $1 AND track_id = ANY($2::uuid[])',
                    user_id,
                    [row['track_id'] for row in valid]
                )

        order = dict(order)
        order['items'] = [
            {'trackId': row['track_id'], 'title': row['title'], 'price': row['price']}
            for row in valid
        ]
        order['skippedTrackIds'] = [row['track_id'] for row in skipped]
        logger.info(
            f"Order {order['id']} created for {user_id}: {len(valid)} tracks, "
            f"{len(skipped)} skipped, total {total}"
        )

        if self.activity is not None:
            await self.activity.log(
                'CHECKOUT', 'Order', entity_id=order['id'], user_id=user_id,
                details={'total': float(total)}
            )
        if self.notifier is not None:
            try:
                await self.notifier.notify_user(
                    user_id,
                    'Purchase completed. Tracks were added to your library',
                    {'orderId': order['id'], 'total': float(total), 'targetPath': LIBRARY_PATH}
                )
            except Exception as e:
                logger.error(f"Failed to notify buyer about order {order['id']}: {e}")

        return order

    async def list_orders(self, user_id) -> List[Dict[str, Any]]:
        """A buyer's orders newest first, each with its items."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    o.id, o.total, o.created_at AS "createdAt",
                    COALESCE(json_agg(json_build_object(
                        'trackId', t.id,
                        'title', t.title,
                        'authorName', t.author_name,
                        'coverUrl', t.cover_url,
                        'price', oi.price
                    )) FILTER (WHERE oi.track_id IS NOT NULL), '[]'::json) AS items
                FROM orders o
                LEFT JOIN order_items oi ON oi.order_id = o.id
                LEFT JOIN tracks t ON t.id = oi.track_id
                WHERE o.user_id = $1
                GROUP BY o.id
                ORDER BY o.created_at DESC
                ''',
                user_id
            )
        return [dict(row) for row in rows]

    async def sales_report(self) -> Dict[str, Any]:
        """Every order with buyer, items and sellers, plus overall totals."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    o.id, o.total, o.created_at AS "createdAt",
                    json_build_object(
                        'id', b.id, 'username', b.username, 'email', b.email
                    ) AS buyer,
                    COALESCE(json_agg(json_build_object(
                        'trackId', t.id,
                        'title', t.title,
                        'price', oi.price,
                        'seller', json_build_object(
                            'id', s.id, 'username', s.username, 'email', s.email
                        )
                    )) FILTER (WHERE oi.track_id IS NOT NULL), '[]'::json) AS items
                FROM orders o
                JOIN users b ON b.id = o.user_id
                LEFT JOIN order_items oi ON oi.order_id = o.id
                LEFT JOIN tracks t ON t.id = oi.track_id
                LEFT JOIN users s ON s.id = t.seller_id
                GROUP BY o.id, b.id
                ORDER BY o.created_at DESC
                '''
            )
        orders = [dict(row) for row in rows]
        return {
            'totalOrders': len(orders),
            'totalRevenue': sum((order['total'] for order in orders), Decimal('0')),
            'orders': orders
        }


__all__ = [
    'OrderManager',
    'PaymentDetails',
    'select_purchasable',
    'CartEmptyError',
    'NothingPurchasableError',
    'CartTrackNotFoundError'
]
