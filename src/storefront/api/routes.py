"""
FastAPI routes for the Order Service

Domain errors raised below are rendered by the handler registered in
``storefront.main``.
"""
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from storefront.db.database import get_db
from storefront.services.access import Viewer
from storefront.services.auth import viewer_from_token
from storefront.services.order_query import OrderQueryService
from storefront.services.order_service import OrderService
from storefront.models.schemas import (
    OrderCreate,
    OrderCreatedResponse,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
)
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["orders"])

bearer_scheme = HTTPBearer(auto_error=False)


def get_viewer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Viewer:
    """Dependency resolving the caller from the Authorization header"""
    return viewer_from_token(credentials.credentials if credentials else None)


def get_order_service() -> OrderService:
    """Dependency for Order Service"""
    return OrderService()


@router.post(
    "/orders",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED
)
def create_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Place an order from the caller's cart

    - **items**: list of `{product_id, quantity}` (at least one)
    - **shipping_address**: delivery address (required)
    - **phone_number**: contact number (required)
    - **payment_method**: `cash_on_delivery` (default)

    Prices and the order total come from the catalog, not from the request.
    """
    logger.info(f"Creating order for user {viewer.user_id}")

    new_order = order_service.place_order(db, viewer, order)
    return OrderCreatedResponse(order_id=new_order.id, total_amount=new_order.total_amount)


@router.get("/orders", response_model=List[OrderResponse])
def list_orders(
    db: Session = Depends(get_db),
    viewer: Viewer = Depends(get_viewer)
):
    """List every order, newest first (admin only)"""
    return OrderQueryService.list_all_orders(db, viewer)


@router.get("/orders/my-orders", response_model=List[OrderResponse])
def list_my_orders(
    db: Session = Depends(get_db),
    viewer: Viewer = Depends(get_viewer)
):
    """List the caller's orders, newest first"""
    return OrderQueryService.list_orders_for_user(db, viewer)


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    viewer: Viewer = Depends(get_viewer)
):
    """Get a specific order by ID (owner or admin)"""
    return OrderQueryService.get_order(db, viewer, order_id)


@router.patch("/orders/{order_id}/status", response_model=OrderStatusResponse)
def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    db: Session = Depends(get_db),
    viewer: Viewer = Depends(get_viewer)
):
    """
    Update order status (admin only)

    Available statuses:
    - pending
    - processing
    - shipped
    - delivered
    - cancelled
    """
    logger.info(f"Updating order {order_id} status to {status_update.status}")

    new_status = OrderService.set_status(db, viewer, order_id, status_update.status)
    return OrderStatusResponse(order_id=order_id, status=new_status)
