"""Media library of owned tracks and the playlists built from them."""

import logging
from typing import Any, Dict, List

from errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

TRACK_JSON = '''
    json_build_object(
        'id', t.id,
        'title', t.title,
        'authorName', t.author_name,
        'mediaUrl', t.media_url,
        'coverUrl', t.cover_url,
        'genre', json_build_object('id', g.id, 'name', g.name),
        'price', t.price
    )
'''

class PlaylistNotFoundError(NotFoundError):
    pass

class TrackNotOwnedError(ForbiddenError):
    """Raised when adding a track the user hasn't bought to a playlist."""
    pass

class LibraryManager:
    """Owned tracks and playlists of one user at a time."""

    def __init__(self, pool):
        self.pool = pool

    async def owned_tracks(self, user_id) -> List[Dict[str, Any]]:
        """Purchased tracks, latest purchase first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT
                    l.purchased_at AS "purchasedAt",
                    l.source_order_id AS "orderId",
                    {TRACK_JSON} AS track
                FROM library_items l
                JOIN tracks t ON t.id = l.track_id
                JOIN genres g ON g.id = t.genre_id
                WHERE l.user_id = $1
                ORDER BY l.purchased_at DESC
                ''',
                user_id
            )
        return [dict(row) for row in rows]

    async def owns_track(self, conn, user_id, track_id) -> bool:
        return await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM library_items WHERE user_id = $1 AND track_id = $2)',
            user_id,
            track_id
        )

    async def list_playlists(self, user_id) -> List[Dict[str, Any]]:
        """Playlists most recently changed first, each with its tracks."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT
                    p.id, p.name,
                    p.created_at AS "createdAt",
                    p.updated_at AS "updatedAt",
                    COALESCE(json_agg({TRACK_JSON} ORDER BY pt.added_at)
                        FILTER (WHERE t.id IS NOT NULL), '[]'::json) AS tracks
                FROM playlists p
                LEFT JOIN playlist_tracks pt ON pt.playlist_id = p.id
                LEFT JOIN tracks t ON t.id = pt.track_id
                LEFT JOIN genres g ON g.id = t.genre_id
                WHERE p.user_id = $1
                GROUP BY p.id
                ORDER BY p.updated_at DESC
                ''',
                user_id
            )
        return [dict(row) for row in rows]

    async def create_playlist(self, user_id, name: str) -> Dict[str, Any]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO playlists (user_id, name)
                VALUES ($1, $2)
                RETURNING id, name, created_at AS "createdAt", updated_at AS "updatedAt"
                ''',
                user_id,
                name
            )
        return dict(row)

    async def rename_playlist(self, user_id, playlist_id, name: str) -> Dict[str, Any]:
        """Rename one of the user's playlists.

        Raises:
            PlaylistNotFoundError: If the playlist isn't the user's
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE playlists SET name = $3
                WHERE id = $1 AND user_id = $2
                RETURNING id, name, created_at AS "createdAt", updated_at AS "updatedAt"
                ''',
                playlist_id,
                user_id,
                name
            )
        if not row:
            raise PlaylistNotFoundError("Playlist not found")
        return dict(row)

    async def delete_playlist(self, user_id, playlist_id) -> bool:
        """Delete a playlist; its memberships go with it."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM playlists WHERE id = $1 AND user_id = $2',
                playlist_id,
                user_id
            )
        return not result.endswith(' 0')

    async def add_track(self, user_id, playlist_id, track_id) -> None:
        """Add an owned track to a playlist; adding it again is a no-op.

        Raises:
            PlaylistNotFoundError: If the playlist isn't the user's
            TrackNotOwnedError: If the track isn't in the user's library
        """
        async with self.pool.acquire() as conn:
            playlist = await conn.fetchval(
                'SELECT id FROM playlists WHERE id = $1 AND user_id = $2',
                playlist_id,
                user_id
            )
            if not playlist:
                raise PlaylistNotFoundError("Playlist not found")
            if not await self.owns_track(conn, user_id, track_id):
                raise TrackNotOwnedError("Track is not in your media library")

            async with conn.transaction():
                await conn.execute(
                    '''
                    INSERT INTO playlist_tracks (playlist_id, track_id)
                    VALUES ($1, $2)
                    ON CONFLICT (playlist_id, track_id) DO NOTHING
                    ''',
                    playlist,
                    track_id
                )
                await conn.execute('UPDATE playlists SET updated_at = now() WHERE id = $1', playlist)

    async def remove_track(self, user_id, playlist_id, track_id) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                '''
                DELETE FROM playlist_tracks pt
                USING playlists p
                WHERE pt.playlist_id = p.id
                  AND p.id = $1
                  AND p.user_id = $2
                  AND pt.track_id = $3
                ''',
                playlist_id,
                user_id,
                track_id
            )
        return not result.endswith(' 0')


__all__ = ['LibraryManager', 'PlaylistNotFoundError', 'TrackNotOwnedError']
