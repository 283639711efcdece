"""Profile, password and notification endpoints for the signed-in user."""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from ..deps import get_current_user, get_services
from ..services import Services
from ..uploads import AVATARS, save_upload

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

class PasswordChangeRequest(BaseModel):
    """Request model for changing the password."""
    current_password: str = Field(alias='currentPassword', min_length=6, max_length=64)
    new_password: str = Field(alias='newPassword', min_length=6, max_length=64)

@router.get("/profile")
async def get_profile(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"user": await services.users.get_profile(user['id'])}

@router.patch("/profile")
async def update_profile(
    username: str = Form(..., min_length=2, max_length=40),
    avatar: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Update the username and optionally upload a new avatar."""
    avatar_url = None
    if avatar is not None and avatar.filename:
        avatar_url = await save_upload(avatar, services.settings['upload_dir'], AVATARS)
    profile = await services.users.update_profile(user['id'], username, avatar_url)
    return {"user": profile}

@router.patch("/password")
async def change_password(
    body: PasswordChangeRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.users.change_password(user['id'], body.current_password, body.new_password)
    return {"message": "Password updated"}

@router.get("/notifications")
async def list_notifications(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Latest notifications of the user, newest first."""
    return {"notifications": await services.notifications.list_notifications(user['id'])}

@router.patch("/notifications/read-all")
async def mark_all_notifications_read(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    updated = await services.notifications.mark_all_read(user['id'])
    return {"message": "All notifications marked as read", "updated": updated}

@router.patch("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.notifications.mark_read(notification_id, user['id'])
    return {"message": "Notification marked as read"}
