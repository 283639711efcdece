"""Public catalog of approved tracks, plus genre management.

Track listings are cached per query for a short TTL; any change to a
track, review or genre clears the whole catalog cache.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Tuple

from asyncpg.exceptions import UniqueViolationError
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from database.enums import ModerationStatus, ModerationType, TrackStatus
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SortOrder = Literal['price_asc', 'price_desc', 'date_desc', 'rating_desc']

ORDER_BY = {
    'price_asc': 't.price ASC, t.created_at DESC',
    'price_desc': 't.price DESC, t.created_at DESC',
    'date_desc': 't.created_at DESC',
    'rating_desc': '"averageRating" DESC, t.created_at DESC',
}

class TrackQuery(BaseModel):
    """Filters and sort order of a catalog listing."""
    model_config = ConfigDict(populate_by_name=True)

    search: Optional[str] = None
    genre: Optional[str] = None
    author: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, alias='minPrice')
    max_price: Optional[Decimal] = Field(default=None, alias='maxPrice')
    sort: SortOrder = 'date_desc'

    def cache_query(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)

class CatalogTrackNotFoundError(NotFoundError):
    pass

class GenreNotFoundError(NotFoundError):
    pass

class GenreExistsError(ConflictError):
    pass

class GenreInUseError(ValidationError):
    """Raised when deleting a genre that still has tracks."""
    pass

def build_search_query(query: TrackQuery) -> Tuple[str, List[Any]]:
    """Build the listing SQL for a query.

    Returns:
        Tuple of (query, params)
    """
    params: List[Any] = [TrackStatus.APPROVED.value, ModerationStatus.APPROVED.value]
    conditions = ['t.status = $1']

    if query.search:
        params.append(f"%{query.search}%")
        conditions.append(f"(t.title ILIKE ${len(params)} OR t.description ILIKE ${len(params)})")

    if query.genre:
        params.append(query.genre)
        exact = len(params)
        params.append(f"%{query.genre}%")
        conditions.append(f"(g.id::text = ${exact} OR g.name ILIKE ${len(params)})")

    if query.author:
        params.append(f"%{query.author}%")
        conditions.append(f"t.author_name ILIKE ${len(params)}")

    if query.min_price is not None:
        params.append(query.min_price)
        conditions.append(f"t.price >= ${len(params)}")

    if query.max_price is not None:
        params.append(query.max_price)
        conditions.append(f"t.price <= ${len(params)}")

    sql = f'''
        SELECT
            t.id, t.title,
            t.author_name AS "authorName",
            json_build_object('id', g.id, 'name', g.name) AS genre,
            t.price,
            t.cover_url AS "coverUrl",
            t.created_at AS "createdAt",
            COALESCE(avg(r.rating)::float8, 0) AS "averageRating",
            count(r.id) AS "ratingCount"
        FROM tracks t
        JOIN genres g ON g.id = t.genre_id
        LEFT JOIN reviews r ON r.track_id = t.id AND r.status = $2
        WHERE {' AND '.join(conditions)}
        GROUP BY t.id, g.id
        ORDER BY {ORDER_BY[query.sort]}
    '''
    return sql, params

class CatalogManager:
    """Catalog reads and genre administration."""

    def __init__(self, pool, cache=None):
        self.pool = pool
        self.cache = cache

    async def _clear_cache(self) -> None:
        if self.cache is not None:
            await self.cache.clear()

    async def search_tracks(self, query: TrackQuery) -> Dict[str, Any]:
        """List approved tracks matching a query, through the cache."""
        cache_query = query.cache_query()
        if self.cache is not None:
            cached = await self.cache.get(cache_query)
            if cached is not None:
                return cached

        sql, params = build_search_query(query)
        logger.debug("Executing catalog query: %s with params: %r", sql, params)
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(sql, *params)

        result = jsonable_encoder({'tracks': [dict(row) for row in rows]})
        if self.cache is not None:
            await self.cache.set(cache_query, result)
        return result

    async def get_track(self, track_id) -> Dict[str, Any]:
        """Detail of an approved track with its approved reviews.

        Raises:
            CatalogTrackNotFoundError: If the track isn't APPROVED
        """
        async with self.pool.acquire() as conn:
            track = await conn.fetchrow(
                '''
                SELECT
                    t.id, t.title, t.description,
                    t.author_name AS "authorName",
                    json_build_object('id', g.id, 'name', g.name) AS genre,
                    t.price,
                    t.media_url AS "mediaUrl",
                    t.cover_url AS "coverUrl",
                    t.created_at AS "createdAt",
                    json_build_object('id', s.id, 'username', s.username) AS seller
                FROM tracks t
                JOIN genres g ON g.id = t.genre_id
                JOIN users s ON s.id = t.seller_id
                WHERE t.id = $1 AND t.status = $2
                ''',
                track_id,
                TrackStatus.APPROVED.value
            )
            if not track:
                raise CatalogTrackNotFoundError("Track not found")

            reviews = await conn.fetch(
                '''
                SELECT
                    r.id, r.rating, r.comment,
                    r.created_at AS "createdAt",
                    json_build_object(
                        'id', u.id, 'username', u.username, 'avatarUrl', u.avatar_url
                    ) AS "user"
                FROM reviews r
                JOIN users u ON u.id = r.user_id
                WHERE r.track_id = $1 AND r.status = $2
                ORDER BY r.created_at DESC
                ''',
                track_id,
                ModerationStatus.APPROVED.value
            )

        track = dict(track)
        track['reviews'] = [dict(review) for review in reviews]
        ratings = [review['rating'] for review in track['reviews']]
        track['averageRating'] = sum(ratings) / len(ratings) if ratings else 0
        return track

    # Genres

    async def list_genres(self) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT id, name, created_at AS "createdAt" FROM genres ORDER BY name ASC'
            )
        return [dict(row) for row in rows]

    async def create_genre(self, name: str) -> Dict[str, Any]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    'INSERT INTO genres (name) VALUES ($1) RETURNING id, name, created_at AS "createdAt"',
                    name
                )
        except UniqueViolationError:
            raise GenreExistsError("Genre already exists")
        await self._clear_cache()
        return dict(row)

    async def update_genre(self, genre_id, name: str) -> Dict[str, Any]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    UPDATE genres SET name = $2 WHERE id = $1
                    RETURNING id, name, created_at AS "createdAt"
                    ''',
                    genre_id,
                    name
                )
        except UniqueViolationError:
            raise GenreExistsError("Genre already exists")
        if not row:
            raise GenreNotFoundError("Genre not found")
        await self._clear_cache()
        return dict(row)

    async def delete_genre(self, genre_id) -> None:
        """Delete a genre that no track uses.

        Raises:
            GenreInUseError: If any track, archived ones included, links to it,
                or a pending update request would move a track into it
            GenreNotFoundError: If the genre doesn't exist
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                linked = await conn.fetchval(
                    'SELECT count(*) FROM tracks WHERE genre_id = $1',
                    genre_id
                )
                if linked:
                    raise GenreInUseError("Cannot delete genre with linked tracks")
                pending = await conn.fetchval(
                    '''
                    SELECT count(*) FROM moderation_requests
                    WHERE type = $1 AND status = $2 AND payload->>'genreId' = $3
                    ''',
                    ModerationType.TRACK_UPDATE.value,
                    ModerationStatus.PENDING.value,
                    str(genre_id)
                )
                if pending:
                    raise GenreInUseError("Cannot delete genre referenced by a pending track update")
                result = await conn.execute('DELETE FROM genres WHERE id = $1', genre_id)
        if result.endswith(' 0'):
            raise GenreNotFoundError("Genre not found")
        await self._clear_cache()


__all__ = [
    'CatalogManager',
    'TrackQuery',
    'SortOrder',
    'build_search_query',
    'CatalogTrackNotFoundError',
    'GenreNotFoundError',
    'GenreExistsError',
    'GenreInUseError'
]
