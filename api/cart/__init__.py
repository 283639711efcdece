"""Cart and checkout endpoints."""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from orders import PaymentDetails

from ..deps import get_current_user, get_services
from ..services import Services

router = APIRouter(
    prefix="/cart",
    tags=["Cart"]
)

class CartItemRequest(BaseModel):
    """Request model for adding a track to the cart."""
    track_id: UUID = Field(alias='trackId')

@router.get("/")
async def get_cart(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return await services.orders.get_cart(user['id'])

@router.post("/items", status_code=status.HTTP_201_CREATED)
async def add_item(
    body: CartItemRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.orders.add_to_cart(user['id'], body.track_id)
    return {"message": "Track added to cart"}

@router.delete("/items/{track_id}")
async def remove_item(
    track_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await services.orders.remove_from_cart(user['id'], track_id)
    return {"message": "Item removed"}

@router.post("/checkout")
async def checkout(
    payment: PaymentDetails,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Buy every available track in the cart; unavailable ones stay in it."""
    order = await services.orders.checkout(user['id'], payment)
    return {
        "message": "Purchase completed",
        "orderId": order['id'],
        "order": order
    }
