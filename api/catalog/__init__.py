"""Public catalog endpoints."""

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from catalog import SortOrder, TrackQuery

from ..deps import get_current_user, get_services
from ..services import Services

router = APIRouter(
    prefix="/catalog",
    tags=["Catalog"]
)

class ReviewRequest(BaseModel):
    """Request model for reviewing a track."""
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=3, max_length=500)

@router.get("/genres")
async def list_genres(services: Services = Depends(get_services)):
    return {"genres": await services.catalog.list_genres()}

@router.get("/tracks")
async def list_tracks(
    search: Optional[str] = None,
    genre: Optional[str] = None,
    author: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    sort: SortOrder = 'date_desc',
    services: Services = Depends(get_services)
):
    """List approved tracks with optional filters."""
    query = TrackQuery(
        search=search,
        genre=genre,
        author=author,
        min_price=min_price,
        max_price=max_price,
        sort=sort
    )
    return await services.catalog.search_tracks(query)

@router.get("/tracks/{track_id}")
async def get_track(track_id: UUID, services: Services = Depends(get_services)):
    """Get an approved track with its approved reviews."""
    return {"track": await services.catalog.get_track(track_id)}

@router.post("/tracks/{track_id}/reviews", status_code=status.HTTP_201_CREATED)
async def submit_review(
    track_id: UUID,
    body: ReviewRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Submit or replace a review; it stays hidden until moderated."""
    review = await services.moderation.submit_review(track_id, user['id'], body.rating, body.comment)
    return {"message": "Review submitted for moderation", "reviewId": review['id']}
