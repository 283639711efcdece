"""Admin endpoints: moderation queues, users, genres and reports."""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field

from database.enums import Decision

from ..deps import get_services, require_admin
from ..services import Services

router = APIRouter(
    prefix="/admin",
    tags=["Admin"]
)

class DecisionRequest(BaseModel):
    """Optional note attached to a moderation decision."""
    note: Optional[str] = Field(default=None, max_length=400)

class GenreRequest(BaseModel):
    name: str = Field(min_length=2, max_length=60)

def _decision_body(body: Optional[DecisionRequest] = Body(None)) -> DecisionRequest:
    return body or DecisionRequest()

# Track moderation

@router.get("/moderation/tracks")
async def pending_track_requests(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"requests": await services.moderation.list_pending_requests()}

@router.post("/moderation/tracks/{request_id}/approve")
async def approve_track_request(
    request_id: UUID,
    body: DecisionRequest = Depends(_decision_body),
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    request = await services.moderation.decide(request_id, admin['id'], Decision.APPROVE, body.note)
    return {"message": "Request approved", "request": request}

@router.post("/moderation/tracks/{request_id}/reject")
async def reject_track_request(
    request_id: UUID,
    body: DecisionRequest = Depends(_decision_body),
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    request = await services.moderation.decide(request_id, admin['id'], Decision.REJECT, body.note)
    return {"message": "Request rejected", "request": request}

# Review moderation

@router.get("/moderation/reviews")
async def pending_reviews(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"reviews": await services.moderation.list_pending_reviews()}

@router.post("/moderation/reviews/{review_id}/approve")
async def approve_review(
    review_id: UUID,
    body: DecisionRequest = Depends(_decision_body),
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.moderation.decide_review(review_id, admin['id'], Decision.APPROVE, body.note)
    return {"message": "Review approved"}

@router.post("/moderation/reviews/{review_id}/reject")
async def reject_review(
    review_id: UUID,
    body: DecisionRequest = Depends(_decision_body),
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.moderation.decide_review(review_id, admin['id'], Decision.REJECT, body.note)
    return {"message": "Review rejected"}

# Users

@router.get("/users")
async def list_users(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"users": await services.users.list_users()}

@router.post("/users/{user_id}/block")
async def block_user(
    user_id: UUID,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.users.set_blocked(admin['id'], user_id, True)
    return {"message": "User blocked"}

@router.post("/users/{user_id}/unblock")
async def unblock_user(
    user_id: UUID,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.users.set_blocked(admin['id'], user_id, False)
    return {"message": "User unblocked"}

# Genres

@router.get("/genres")
async def list_genres(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"genres": await services.catalog.list_genres()}

@router.post("/genres", status_code=status.HTTP_201_CREATED)
async def create_genre(
    body: GenreRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"genre": await services.catalog.create_genre(body.name)}

@router.patch("/genres/{genre_id}")
async def update_genre(
    genre_id: UUID,
    body: GenreRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"genre": await services.catalog.update_genre(genre_id, body.name)}

@router.delete("/genres/{genre_id}")
async def delete_genre(
    genre_id: UUID,
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.catalog.delete_genre(genre_id)
    return {"message": "Genre deleted"}

# Reports

@router.get("/reports/sales")
async def sales_report(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return await services.orders.sales_report()

@router.get("/reports/activity")
async def activity_report(
    admin: Dict[str, Any] = Depends(require_admin),
    services: Services = Depends(get_services)
):
    limit = services.settings['activity_report_limit']
    return {"logs": await services.activity.recent(limit)}
