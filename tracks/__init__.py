"""Seller side of the track workflow.

Uploads, edits and deletions all end up as moderation requests; this
module validates ownership, stores the PENDING track for new uploads and
builds the seller's views of their catalogue.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from catalog import GenreNotFoundError
from database.enums import ModerationStatus, ModerationType, TrackStatus
from errors import NotFoundError, ValidationError
from moderation.models import TrackCreatePayload, TrackUpdatePayload, TrackDeletePayload

logger = logging.getLogger(__name__)

class SellerTrackNotFoundError(NotFoundError):
    """Raised when a track doesn't exist, isn't the seller's or is archived."""
    pass

class TrackManager:
    """Seller track operations routed through moderation."""

    def __init__(self, pool, moderation, cache=None, activity=None):
        """Initialize track manager.

        Args:
            pool: Database connection pool
            moderation: ModerationManager that owns request creation
            cache: CatalogCache
            activity: ActivityLog
        """
        self.pool = pool
        self.moderation = moderation
        self.cache = cache
        self.activity = activity

    async def _log(self, action: str, track_id, seller_id) -> None:
        if self.activity is not None:
            await self.activity.log(action, 'Track', entity_id=track_id, user_id=seller_id)

    async def _ensure_genre(self, conn, genre_id) -> None:
        exists = await conn.fetchval('SELECT EXISTS(SELECT 1 FROM genres WHERE id = $1)', genre_id)
        if not exists:
            raise GenreNotFoundError("Genre not found")

    async def _owned_track(self, conn, seller_id, track_id):
        track = await conn.fetchrow(
            '''
            SELECT id, title
            FROM tracks
            WHERE id = $1 AND seller_id = $2 AND status != $3
            ''',
            track_id,
            seller_id,
            TrackStatus.ARCHIVED.value
        )
        if not track:
            raise SellerTrackNotFoundError("Track not found")
        return track

    async def create_track(
        self,
        seller: Dict[str, Any],
        title: str,
        description: str,
        genre_id,
        price: Decimal,
        media_url: str,
        cover_url: Optional[str] = None,
        author_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store a PENDING track and its TRACK_CREATE request together.

        Args:
            seller: Principal of the uploading seller
            author_name: Defaults to the seller's username

        Returns:
            Dict with the new track id and moderation request
        """
        async with self.pool.acquire() as conn:
            await self._ensure_genre(conn, genre_id)
            async with conn.transaction():
                track = await conn.fetchrow(
                    '''
                    INSERT INTO tracks (
                        seller_id, title, description, author_name,
                        genre_id, price, media_url, cover_url, status
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    RETURNING
                        id, title, description, author_name, genre_id,
                        price, media_url, cover_url
                    ''',
                    seller['id'],
                    title,
                    description,
                    author_name or seller['username'],
                    genre_id,
                    price,
                    media_url,
                    cover_url,
                    TrackStatus.PENDING.value
                )
                payload = TrackCreatePayload(
                    title=track['title'],
                    description=track['description'],
                    author_name=track['author_name'],
                    genre_id=track['genre_id'],
                    price=track['price'],
                    media_url=track['media_url'],
                    cover_url=track['cover_url']
                )
                request = await self.moderation.create_request(
                    conn, ModerationType.TRACK_CREATE, track['id'], seller['id'], payload
                )

        logger.info(f"Seller {seller['id']} uploaded track {track['id']}")
        if self.cache is not None:
            await self.cache.clear()
        await self.moderation.announce_request(request, track['title'])
        await self._log('SELLER_CREATE_TRACK', track['id'], seller['id'])
        return {'trackId': track['id'], 'moderation': request}

    async def request_update(self, seller_id, track_id, changes: TrackUpdatePayload) -> Dict[str, Any]:
        """Submit a TRACK_UPDATE request for fields the seller provided.

        Raises:
            ValidationError: If no field was provided
            SellerTrackNotFoundError: If the track isn't the seller's
        """
        if not changes.changes():
            raise ValidationError("At least one field is required")

        async with self.pool.acquire() as conn:
            track = await self._owned_track(conn, seller_id, track_id)
            if changes.genre_id is not None:
                await self._ensure_genre(conn, changes.genre_id)

        request = await self.moderation.submit_request(
            ModerationType.TRACK_UPDATE, track['id'], seller_id, changes,
            track_title=track['title']
        )
        await self._log('SELLER_UPDATE_TRACK_REQUEST', track['id'], seller_id)
        return request

    async def request_delete(self, seller_id, track_id) -> Dict[str, Any]:
        """Submit a TRACK_DELETE request; approval archives the track."""
        async with self.pool.acquire() as conn:
            track = await self._owned_track(conn, seller_id, track_id)

        request = await self.moderation.submit_request(
            ModerationType.TRACK_DELETE,
            track['id'],
            seller_id,
            TrackDeletePayload(id=track['id'], title=track['title']),
            track_title=track['title']
        )
        await self._log('SELLER_DELETE_TRACK_REQUEST', track['id'], seller_id)
        return request

    async def seller_tracks(self, seller_id) -> List[Dict[str, Any]]:
        """Every track of a seller, newest first, with sales and rating."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    t.id, t.title, t.description,
                    t.author_name AS "authorName",
                    t.price,
                    json_build_object('id', g.id, 'name', g.name) AS genre,
                    t.media_url AS "mediaUrl",
                    t.cover_url AS "coverUrl",
                    t.status,
                    t.created_at AS "createdAt",
                    (SELECT count(*) FROM order_items oi WHERE oi.track_id = t.id) AS "salesCount",
                    COALESCE((
                        SELECT avg(r.rating)::float8 FROM reviews r
                        WHERE r.track_id = t.id AND r.status = $2
                    ), 0) AS "averageRating",
                    (
                        SELECT json_build_object(
                            'id', m.id, 'type', m.type, 'status', m.status,
                            'note', m.note, 'createdAt', m.created_at
                        )
                        FROM moderation_requests m
                        WHERE m.track_id = t.id
                        ORDER BY m.created_at DESC
                        LIMIT 1
                    ) AS "latestModeration"
                FROM tracks t
                JOIN genres g ON g.id = t.genre_id
                WHERE t.seller_id = $1
                ORDER BY t.created_at DESC
                ''',
                seller_id,
                ModerationStatus.APPROVED.value
            )
        return [dict(row) for row in rows]

    async def dashboard(self, seller_id) -> List[Dict[str, Any]]:
        """Sales, revenue, rating and approved reviews per track."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    t.id, t.title, t.status,
                    (SELECT count(*) FROM order_items oi WHERE oi.track_id = t.id) AS "salesCount",
                    (SELECT COALESCE(sum(oi.price), 0) FROM order_items oi
                        WHERE oi.track_id = t.id) AS revenue,
                    COALESCE((
                        SELECT avg(r.rating)::float8 FROM reviews r
                        WHERE r.track_id = t.id AND r.status = $2
                    ), 0) AS "averageRating",
                    COALESCE((
                        SELECT json_agg(json_build_object(
                            'id', r.id, 'rating', r.rating, 'comment', r.comment,
                            'author', u.username, 'createdAt', r.created_at
                        ) ORDER BY r.created_at DESC)
                        FROM reviews r
                        JOIN users u ON u.id = r.user_id
                        WHERE r.track_id = t.id AND r.status = $2
                    ), '[]'::json) AS reviews
                FROM tracks t
                WHERE t.seller_id = $1
                ORDER BY t.created_at DESC
                ''',
                seller_id,
                ModerationStatus.APPROVED.value
            )
        return [dict(row) for row in rows]


__all__ = ['TrackManager', 'SellerTrackNotFoundError']
