"""Explicitly constructed collaborators shared by every router."""

import logging
from typing import Any, Dict, Optional

from activity import ActivityLog
from auth import AuthManager
from cache import CatalogCache
from catalog import CatalogManager
from database import Database
from hub import ConnectionHub
from library import LibraryManager
from moderation import ModerationManager
from notifications import NotificationManager
from orders import OrderManager
from tracks import TrackManager
from users import UserManager

logger = logging.getLogger(__name__)

class Services:
    """Owns the database, cache and hub and the managers built on them."""

    def __init__(
        self,
        settings: Dict[str, Any],
        database: Optional[Database] = None,
        cache: Optional[CatalogCache] = None
    ):
        self.settings = settings
        self.database = database or Database(settings['db_url'])
        self.cache = cache or CatalogCache(settings['redis_url'], ttl=settings['catalog_cache_ttl'])
        self.pool = None

    def wire(self, pool) -> 'Services':
        """Build every manager on top of a pool."""
        settings = self.settings
        self.pool = pool
        self.activity = ActivityLog(pool)
        self.auth = AuthManager(
            pool,
            settings['jwt_secret'],
            expiry_days=settings['token_expiry_days'],
            activity=self.activity
        )
        self.hub = ConnectionHub(self.auth)
        self.notifications = NotificationManager(pool, self.hub, limit=settings['notification_limit'])
        self.moderation = ModerationManager(pool, self.cache, self.notifications, self.activity)
        self.tracks = TrackManager(pool, self.moderation, self.cache, self.activity)
        self.catalog = CatalogManager(pool, self.cache)
        self.orders = OrderManager(pool, self.notifications, self.activity)
        self.library = LibraryManager(pool)
        self.users = UserManager(pool, self.activity)
        return self

    async def start(self) -> 'Services':
        logger.info("Connecting to database...")
        pool = await self.database.connect()
        logger.info("Connecting to cache...")
        await self.cache.connect()
        return self.wire(pool)

    async def close(self) -> None:
        logger.info("Closing cache and database connections...")
        try:
            await self.cache.close()
        finally:
            await self.database.close()
