"""Media library and playlist endpoints."""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import get_current_user, get_services
from ..services import Services

router = APIRouter(
    prefix="/library",
    tags=["Library"]
)

class PlaylistRequest(BaseModel):
    name: str = Field(min_length=2, max_length=80)

class PlaylistTrackRequest(BaseModel):
    track_id: UUID = Field(alias='trackId')

@router.get("/tracks")
async def owned_tracks(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"tracks": await services.library.owned_tracks(user['id'])}

@router.get("/orders")
async def list_orders(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"orders": await services.orders.list_orders(user['id'])}

@router.get("/playlists")
async def list_playlists(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"playlists": await services.library.list_playlists(user['id'])}

@router.post("/playlists", status_code=status.HTTP_201_CREATED)
async def create_playlist(
    body: PlaylistRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"playlist": await services.library.create_playlist(user['id'], body.name)}

@router.patch("/playlists/{playlist_id}")
async def rename_playlist(
    playlist_id: UUID,
    body: PlaylistRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    playlist = await services.library.rename_playlist(user['id'], playlist_id, body.name)
    return {"message": "Playlist updated", "playlist": playlist}

@router.delete("/playlists/{playlist_id}")
async def delete_playlist(
    playlist_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.library.delete_playlist(user['id'], playlist_id)
    return {"message": "Playlist removed"}

@router.post("/playlists/{playlist_id}/tracks", status_code=status.HTTP_201_CREATED)
async def add_playlist_track(
    playlist_id: UUID,
    body: PlaylistTrackRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Add a track from the user's library to a playlist."""
    await services.library.add_track(user['id'], playlist_id, body.track_id)
    return {"message": "Track added to playlist"}

@router.delete("/playlists/{playlist_id}/tracks/{track_id}")
async def remove_playlist_track(
    playlist_id: UUID,
    track_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.library.remove_track(user['id'], playlist_id, track_id)
    return {"message": "Track removed from playlist"}
