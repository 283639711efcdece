"""Database module for managing connections to PostgreSQL.

This module handles:
- Database bootstrap and connection pool initialization
- Schema management
- Connection lifecycle
"""

import json
import logging
import ssl
from typing import Optional, Dict, Any
from urllib.parse import urlparse, parse_qs

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    OSError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
)

def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for hosted PostgreSQL connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context

def _get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.

    SSL is only enabled when the URL asks for it with sslmode=require
    (or verify-full); local development databases connect in plain text.
    """
    params = parse_qs(urlparse(db_url).query)
    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '300000',  # 5 minutes
        }
    }
    sslmode = params.get('sslmode', [''])[0]
    if sslmode in ('require', 'verify-full'):
        kwargs['ssl'] = _get_ssl_context()
    return kwargs

async def _init_connection(conn) -> None:
    """Register JSON codecs so JSONB columns round-trip as Python objects."""
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog'
        )

@backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=5)
async def create_database_if_not_exists(db_url: str) -> None:
    """Create the database named in the URL if it doesn't exist.

    Args:
        db_url: Database connection URL

    Raises:
        Exception: If database creation fails after retries
    """
    parsed = urlparse(db_url)
    db_name = parsed.path.strip('/')
    if not db_name:
        return

    base_url = parsed._replace(path='/postgres').geturl()
    conn = await asyncpg.connect(base_url, **_get_connection_kwargs(base_url))
    try:
        exists = await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)',
            db_name
        )
        if not exists:
            await conn.execute(f'CREATE DATABASE "{db_name}"')
            logger.info(f"Created database {db_name}")
    finally:
        await conn.close()


class Database:
    """Owns the asyncpg pool for one database URL."""

    def __init__(self, db_url: str, create_database: bool = True) -> None:
        self.db_url = db_url
        self.create_database = create_database
        self._pool: Optional[asyncpg.Pool] = None
        self.schema_manager: Optional[SchemaManager] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """The connection pool.

        Raises:
            DatabaseError: If connect() hasn't been called
        """
        if self._pool is None:
            raise DatabaseError("Database pool is not initialized")
        return self._pool

    @backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=5)
    async def _create_pool(self) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            self.db_url,
            min_size=2,
            max_size=20,
            max_queries=10000,
            max_inactive_connection_lifetime=300.0,
            command_timeout=60.0,
            init=_init_connection,
            **_get_connection_kwargs(self.db_url)
        )

    async def connect(self) -> asyncpg.Pool:
        """Create the pool and bring the schema up to date."""
        if self._pool is not None:
            return self._pool

        try:
            if self.create_database:
                try:
                    await create_database_if_not_exists(self.db_url)
                except asyncpg.exceptions.InsufficientPrivilegeError:
                    logger.warning("No privilege to create database, assuming it exists")

            self._pool = await self._create_pool()
            self.schema_manager = SchemaManager(self._pool)
            await self.schema_manager.initialize()
            logger.info("Database pool ready")
            return self._pool

        except DatabaseSchemaError:
            await self.close()
            raise
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            await self.close()
            raise DatabaseError(f"Database initialization failed: {e}") from e

    async def ping(self) -> bool:
        """Check the database answers a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval('SELECT 1')
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the database connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self.schema_manager = None


__all__ = ['Database', 'DatabaseError', 'DatabaseSchemaError', 'create_database_if_not_exists']
