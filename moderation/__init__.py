"""Moderation module for track changes and reviews.

Sellers never change a visible track directly. Every create, update and
delete becomes a PENDING moderation request, and only an admin decision
applies it. A decision flips the request to its terminal status and
mutates the track in the same transaction; cache invalidation,
notifications and the activity entry follow after commit and never undo
the decision when they fail.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from database.enums import Decision, ModerationStatus, ModerationType, TrackStatus, UserRole
from errors import ConflictError, NotFoundError, ValidationError

from .models import (
    PayloadModel,
    TrackCreatePayload,
    TrackUpdatePayload,
    TrackDeletePayload,
    parse_payload,
    plan_track_changes
)

logger = logging.getLogger(__name__)

ADMIN_TRACKS_PATH = '/admin?tab=tracks'
ADMIN_REVIEWS_PATH = '/admin?tab=reviews'
SELLER_PATH = '/seller'

TRACK_COLUMNS = ('title', 'description', 'author_name', 'genre_id', 'price',
                 'media_url', 'cover_url', 'status', 'published_at')

REQUEST_COLUMNS = '''
    id, type, status,
    track_id AS "trackId",
    seller_id AS "sellerId",
    payload,
    moderator_id AS "moderatorId",
    note,
    created_at AS "createdAt",
    updated_at AS "updatedAt",
    decided_at AS "decidedAt"
'''

REVIEW_COLUMNS = '''
    id,
    track_id AS "trackId",
    user_id AS "userId",
    rating, comment, status,
    moderation_note AS "moderationNote",
    moderated_by_id AS "moderatedById",
    created_at AS "createdAt",
    updated_at AS "updatedAt"
'''

ANNOUNCEMENTS = {
    ModerationType.TRACK_CREATE: 'New track "{title}" is waiting for moderation',
    ModerationType.TRACK_UPDATE: 'Changes to track "{title}" are waiting for moderation',
    ModerationType.TRACK_DELETE: 'Deletion of track "{title}" is waiting for moderation',
}

class ModerationRequestNotFoundError(NotFoundError):
    """Raised when a moderation request doesn't exist."""
    pass

class RequestAlreadyDecidedError(ConflictError):
    """Raised when deciding a request that is no longer PENDING."""
    pass

class TrackNotLinkedError(ValidationError):
    """Raised when a request has no track to apply the decision to."""
    pass

class ReviewNotFoundError(NotFoundError):
    pass

class ReviewAlreadyDecidedError(ConflictError):
    pass

class TrackNotFoundError(NotFoundError):
    pass

def build_track_update(changes: Dict[str, Any], track_id) -> tuple:
    """Build an UPDATE statement for the given track columns.

    Returns:
        Tuple of (query, params)
    """
    assignments = []
    params = []
    for column, value in changes.items():
        if column not in TRACK_COLUMNS:
            raise ValueError(f"Unknown track column {column}")
        params.append(value)
        assignments.append(f"{column} = ${len(params)}")
    params.append(track_id)
    query = f'''
        UPDATE tracks
        SET {', '.join(assignments)}
        WHERE id = ${len(params)}
        RETURNING id, title, seller_id
    '''
    return query, params

class ModerationManager:
    """Submits and decides moderation requests for tracks and reviews."""

    def __init__(self, pool, cache=None, notifier=None, activity=None):
        """Initialize moderation manager.

        Args:
            pool: Database connection pool
            cache: CatalogCache cleared after a decision changes a track
            notifier: NotificationManager for sellers, authors and admins
            activity: ActivityLog for decision entries
        """
        self.pool = pool
        self.cache = cache
        self.notifier = notifier
        self.activity = activity

    async def _best_effort(self, what: str, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Failed to {what}: {e}")

    async def _clear_cache(self) -> None:
        if self.cache is not None:
            await self.cache.clear()

    async def _notify_user(self, user_id, message: str, metadata: Dict[str, Any]) -> None:
        if self.notifier is not None:
            await self._best_effort(
                f"notify user {user_id}",
                self.notifier.notify_user(user_id, message, metadata)
            )

    async def _notify_admins(self, message: str, metadata: Dict[str, Any]) -> None:
        if self.notifier is not None:
            await self._best_effort(
                "notify admins",
                self.notifier.notify_role(UserRole.ADMIN, message, metadata)
            )

    async def _log(self, action: str, entity_type: str, entity_id, user_id) -> None:
        if self.activity is not None:
            await self.activity.log(action, entity_type, entity_id=entity_id, user_id=user_id)

    # Track moderation requests

    async def create_request(
        self,
        conn,
        request_type,
        track_id,
        seller_id,
        payload: PayloadModel
    ) -> Dict[str, Any]:
        """Insert a PENDING request on a connection the caller controls.

        Used when the request must commit together with other rows,
        like the track a seller has just uploaded.
        """
        request_type = ModerationType(request_type)
        payload = parse_payload(request_type, payload)
        row = await conn.fetchrow(
            f'''
            INSERT INTO moderation_requests (type, status, track_id, seller_id, payload)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {REQUEST_COLUMNS}
            ''',
            request_type.value,
            ModerationStatus.PENDING.value,
            track_id,
            seller_id,
            payload.to_json()
        )
        logger.info(f"Created {request_type.value} moderation request {row['id']}")
        return dict(row)

    async def announce_request(self, request: Dict[str, Any], track_title: str) -> None:
        """Tell every admin a request is waiting."""
        template = ANNOUNCEMENTS[ModerationType(request['type'])]
        await self._notify_admins(
            template.format(title=track_title),
            {
                'moderationId': request['id'],
                'trackId': request['trackId'],
                'title': track_title,
                'targetPath': ADMIN_TRACKS_PATH
            }
        )

    async def submit_request(
        self,
        request_type,
        track_id,
        seller_id,
        payload: PayloadModel,
        track_title: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a PENDING request and announce it to the admins.

        Returns:
            The stored request
        """
        async with self.pool.acquire() as conn:
            request = await self.create_request(conn, request_type, track_id, seller_id, payload)
            if track_title is None and track_id is not None:
                track_title = await conn.fetchval('SELECT title FROM tracks WHERE id = $1', track_id)

        await self.announce_request(request, track_title or '')
        return request

    async def decide(
        self,
        request_id,
        moderator_id,
        decision,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        """Approve or reject a PENDING request exactly once.

        Raises:
            ModerationRequestNotFoundError: If the request doesn't exist
            RequestAlreadyDecidedError: If the request was already decided
            TrackNotLinkedError: If the request has no track

        Returns:
            The decided request
        """
        decision = Decision(decision)
        status = (ModerationStatus.APPROVED if decision == Decision.APPROVE
                  else ModerationStatus.REJECTED)
        now = datetime.now(timezone.utc)

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                request = await conn.fetchrow(
                    f'''
                    SELECT {REQUEST_COLUMNS}
                    FROM moderation_requests
                    WHERE id = $1
                    FOR UPDATE
                    ''',
                    request_id
                )
                if not request:
                    raise ModerationRequestNotFoundError("Moderation request not found")
                if request['status'] != ModerationStatus.PENDING.value:
                    raise RequestAlreadyDecidedError("Moderation request was already decided")
                if request['trackId'] is None:
                    raise TrackNotLinkedError("Track not linked to moderation request")

                payload = parse_payload(request['type'], request['payload'])
                changes = plan_track_changes(request['type'], payload, decision, now)

                if changes:
                    query, params = build_track_update(changes, request['trackId'])
                    track = await conn.fetchrow(query, *params)
                else:
                    track = await conn.fetchrow(
                        'SELECT id, title, seller_id FROM tracks WHERE id = $1',
                        request['trackId']
                    )
                if not track:
                    raise TrackNotLinkedError("Track not linked to moderation request")

                decided = await conn.fetchrow(
                    f'''
                    UPDATE moderation_requests
                    SET status = $2, moderator_id = $3, note = $4, decided_at = $5
                    WHERE id = $1
                    RETURNING {REQUEST_COLUMNS}
                    ''',
                    request['id'],
                    status.value,
                    moderator_id,
                    note,
                    now
                )

        decided = dict(decided)
        logger.info(
            f"Moderation request {decided['id']} {status.value.lower()} by {moderator_id}"
        )

        if changes:
            await self._clear_cache()

        metadata = {
            'moderationRequestId': decided['id'],
            'trackId': decided['trackId'],
            'targetPath': SELLER_PATH
        }
        if note:
            metadata['note'] = note
        verb = 'approved' if decision == Decision.APPROVE else 'rejected'
        await self._notify_user(
            decided['sellerId'],
            f'Your moderation request for track "{track["title"]}" was {verb}',
            metadata
        )
        await self._log(
            f"ADMIN_{decision.name}_TRACK_MODERATION",
            'TrackModerationRequest',
            decided['id'],
            moderator_id
        )
        return decided

    async def list_pending_requests(self) -> List[Dict[str, Any]]:
        """PENDING requests, oldest first, with seller and track summaries."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    r.id, r.type, r.status,
                    r.track_id AS "trackId",
                    r.seller_id AS "sellerId",
                    r.payload,
                    r.note,
                    r.created_at AS "createdAt",
                    json_build_object(
                        'id', s.id, 'username', s.username, 'email', s.email
                    ) AS seller,
                    CASE WHEN t.id IS NULL THEN NULL ELSE json_build_object(
                        'id', t.id, 'title', t.title, 'status', t.status
                    ) END AS track
                FROM moderation_requests r
                JOIN users s ON s.id = r.seller_id
                LEFT JOIN tracks t ON t.id = r.track_id
                WHERE r.status = $1
                ORDER BY r.created_at ASC
                ''',
                ModerationStatus.PENDING.value
            )
        return [dict(row) for row in rows]

    # Reviews

    async def submit_review(self, track_id, user_id, rating: int, comment: str) -> Dict[str, Any]:
        """Create or overwrite the caller's review of an approved track.

        A resubmitted review goes back to PENDING and loses its previous
        moderation note and moderator.

        Raises:
            TrackNotFoundError: If the track is not APPROVED
        """
        async with self.pool.acquire() as conn:
            track = await conn.fetchrow(
                'SELECT id, title FROM tracks WHERE id = $1 AND status = $2',
                track_id,
                TrackStatus.APPROVED.value
            )
            if not track:
                raise TrackNotFoundError("Track not found")

            review = await conn.fetchrow(
                f'''
                INSERT INTO reviews (track_id, user_id, rating, comment, status)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (track_id, user_id) DO UPDATE
                SET
                    rating = EXCLUDED.rating,
                    comment = EXCLUDED.comment,
                    status = EXCLUDED.status,
                    moderation_note = NULL,
                    moderated_by_id = NULL
                RETURNING {REVIEW_COLUMNS}
                ''',
                track['id'],
                user_id,
                rating,
                comment,
                ModerationStatus.PENDING.value
            )
        review = dict(review)

        await self._clear_cache()
        await self._notify_admins(
            f'New review for track "{track["title"]}" is waiting for moderation',
            {
                'reviewId': review['id'],
                'trackId': track['id'],
                'trackTitle': track['title'],
                'targetPath': ADMIN_REVIEWS_PATH
            }
        )
        await self._log('CREATE_REVIEW', 'TrackReview', review['id'], user_id)
        return review

    async def list_pending_reviews(self) -> List[Dict[str, Any]]:
        """PENDING reviews, oldest first, with author and track summaries."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    r.id,
                    r.track_id AS "trackId",
                    r.user_id AS "userId",
                    r.rating, r.comment, r.status,
                    r.created_at AS "createdAt",
                    json_build_object(
                        'id', u.id, 'username', u.username, 'email', u.email
                    ) AS "user",
                    json_build_object(
                        'id', t.id, 'title', t.title, 'sellerId', t.seller_id
                    ) AS track
                FROM reviews r
                JOIN users u ON u.id = r.user_id
                JOIN tracks t ON t.id = r.track_id
                WHERE r.status = $1
                ORDER BY r.created_at ASC
                ''',
                ModerationStatus.PENDING.value
            )
        return [dict(row) for row in rows]

    async def decide_review(
        self,
        review_id,
        moderator_id,
        decision,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        """Approve or reject a PENDING review.

        Raises:
            ReviewNotFoundError: If the review doesn't exist
            ReviewAlreadyDecidedError: If the review is not PENDING
        """
        decision = Decision(decision)
        status = (ModerationStatus.APPROVED if decision == Decision.APPROVE
                  else ModerationStatus.REJECTED)

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    '''
                    SELECT r.id, r.status, t.title, t.seller_id
                    FROM reviews r
                    JOIN tracks t ON t.id = r.track_id
                    WHERE r.id = $1
                    FOR UPDATE OF r
                    ''',
                    review_id
                )
                if not current:
                    raise ReviewNotFoundError("Review not found")
                if current['status'] != ModerationStatus.PENDING.value:
                    raise ReviewAlreadyDecidedError("Review was already moderated")

                review = await conn.fetchrow(
                    f'''
                    UPDATE reviews
                    SET status = $2, moderated_by_id = $3, moderation_note = $4
                    WHERE id = $1
                    RETURNING {REVIEW_COLUMNS}
                    ''',
                    current['id'],
                    status.value,
                    moderator_id,
                    note
                )
        review = dict(review)
        logger.info(f"Review {review['id']} {status.value.lower()} by {moderator_id}")

        track_path = f"/tracks/{review['trackId']}"
        if decision == Decision.APPROVE:
            await self._clear_cache()
            await self._notify_user(
                review['userId'],
                f'Your review of track "{current["title"]}" was approved',
                {'targetPath': track_path}
            )
            await self._notify_user(
                current['seller_id'],
                f'New approved review for track "{current["title"]}"',
                {'targetPath': SELLER_PATH}
            )
        else:
            metadata = {'targetPath': track_path}
            if note:
                metadata['note'] = note
            await self._notify_user(
                review['userId'],
                'Your review was rejected by a moderator',
                metadata
            )

        await self._log(f"ADMIN_{decision.name}_REVIEW", 'TrackReview', review['id'], moderator_id)
        return review


__all__ = [
    'ModerationManager',
    'ModerationRequestNotFoundError',
    'RequestAlreadyDecidedError',
    'TrackNotLinkedError',
    'ReviewNotFoundError',
    'ReviewAlreadyDecidedError',
    'TrackNotFoundError',
    'TrackCreatePayload',
    'TrackUpdatePayload',
    'TrackDeletePayload',
    'build_track_update'
]
