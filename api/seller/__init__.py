"""Seller endpoints. Every change goes through moderation."""

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from errors import ValidationError
from moderation.models import TrackUpdatePayload

from ..deps import get_services, require_seller
from ..services import Services
from ..uploads import COVERS, TRACKS, save_upload

router = APIRouter(
    prefix="/seller",
    tags=["Seller"]
)

def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)

@router.get("/tracks")
async def seller_tracks(
    user: Dict[str, Any] = Depends(require_seller),
    services: Services = Depends(get_services)
):
    """Own tracks with sales, rating and latest moderation request."""
    return {"tracks": await services.tracks.seller_tracks(user['id'])}

@router.get("/dashboard")
async def dashboard(
    user: Dict[str, Any] = Depends(require_seller),
    services: Services = Depends(get_services)
):
    return {"tracks": await services.tracks.dashboard(user['id'])}

@router.post("/tracks", status_code=status.HTTP_201_CREATED)
async def create_track(
    title: str = Form(..., min_length=2, max_length=120),
    description: str = Form(..., min_length=10, max_length=1500),
    genre_id: UUID = Form(..., alias="genreId"),
    price: Decimal = Form(..., ge=Decimal('0.5'), le=Decimal('9999')),
    author_name: Optional[str] = Form(None, alias="authorName", min_length=2, max_length=120),
    media: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(require_seller),
    services: Services = Depends(get_services)
):
    """Upload a track. It stays PENDING until an admin approves it."""
    if not _has_file(media):
        raise ValidationError("Track media file is required")

    upload_dir = services.settings['upload_dir']
    media_url = await save_upload(media, upload_dir, TRACKS)
    cover_url = await save_upload(cover, upload_dir, COVERS) if _has_file(cover) else None

    result = await services.tracks.create_track(
        user,
        title=title,
        description=description,
        genre_id=genre_id,
        price=price,
        media_url=media_url,
        cover_url=cover_url,
        author_name=author_name
    )
    return {
        "message": "Track sent to moderation",
        "trackId": result['trackId'],
        "moderationId": result['moderation']['id']
    }

@router.patch("/tracks/{track_id}")
async def update_track(
    track_id: UUID,
    title: Optional[str] = Form(None, min_length=2, max_length=120),
    description: Optional[str] = Form(None, min_length=10, max_length=1500),
    genre_id: Optional[UUID] = Form(None, alias="genreId"),
    price: Optional[Decimal] = Form(None, ge=Decimal('0.5'), le=Decimal('9999')),
    author_name: Optional[str] = Form(None, alias="authorName", min_length=2, max_length=120),
    media: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(require_seller),
    services: Services = Depends(get_services)
):
    """Propose changes to a track; only the provided fields change on approval."""
    upload_dir = services.settings['upload_dir']
    changes = TrackUpdatePayload(
        title=title,
        description=description,
        genre_id=genre_id,
        price=price,
        author_name=author_name
    )
    if not changes.changes() and not (_has_file(media) or _has_file(cover)):
        raise ValidationError("At least one field is required")

    if _has_file(media):
        changes.media_url = await save_upload(media, upload_dir, TRACKS)
    if _has_file(cover):
        changes.cover_url = await save_upload(cover, upload_dir, COVERS)

    request = await services.tracks.request_update(user['id'], track_id, changes)
    return {"message": "Track update sent to moderation", "moderationId": request['id']}

@router.delete("/tracks/{track_id}")
async def delete_track(
    track_id: UUID,
    user: Dict[str, Any] = Depends(require_seller),
    services: Services = Depends(get_services)
):
    """Ask for a track to be archived."""
    request = await services.tracks.request_delete(user['id'], track_id)
    return {"message": "Track deletion request sent to moderation", "moderationId": request['id']}
