"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Registration, login and profiles
- Browsing the catalog and reviewing tracks
- Cart, checkout and the media library
- Seller uploads that go through moderation
- Admin moderation, users, genres and reports
- Real-time notifications via WebSocket
- System health monitoring
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import load_settings_conf
from errors import MarketplaceError

from .services import Services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def format_validation_errors(errors) -> str:
    """One line per offending field, first message wins."""
    lines = {}
    for error in errors:
        loc = [str(part) for part in error.get('loc', ()) if part not in ('body', 'query', 'path', 'form')]
        field = '.'.join(loc) or 'request'
        lines.setdefault(field, f"{field}: {error.get('msg', 'invalid value')}")
    return "\n".join(lines.values()) or "Invalid request"

async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": format_validation_errors(exc.errors())}
    )

async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, 'headers', None)
    )

async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"}
    )

def create_app(
    settings: Optional[Dict[str, Any]] = None,
    services: Optional[Services] = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Validated settings, loaded from settings.conf when omitted
        services: Ready collaborators; when omitted they are built and
                  started in the lifespan and closed on shutdown
    """
    if settings is None:
        settings = services.settings if services is not None else load_settings_conf()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        owned = None
        if getattr(app.state, 'services', None) is None:
            logger.info("Initializing services...")
            owned = await Services(settings).start()
            app.state.services = owned

        yield

        if owned is not None:
            logger.info("Shutting down services...")
            await owned.close()
            app.state.services = None

    app = FastAPI(
        title="Audio Marketplace API",
        description="REST API for the audio track marketplace",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.services = services

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings['client_url']],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Import and include all routers
    from .auth import router as auth_router
    from .users import router as users_router
    from .catalog import router as catalog_router
    from .cart import router as cart_router
    from .library import router as library_router
    from .seller import router as seller_router
    from .admin import router as admin_router
    from .websockets import router as websocket_router
    from .system import router as system_router

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(catalog_router)
    app.include_router(cart_router)
    app.include_router(library_router)
    app.include_router(seller_router)
    app.include_router(admin_router)
    app.include_router(websocket_router)
    app.include_router(system_router)

    return app

__all__ = ['create_app', 'format_validation_errors']
