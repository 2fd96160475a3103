"""
Pydantic schemas for the order service

Request models only fix the shape of a checkout; the business checks
(non-empty cart, positive quantities, address and phone present) run in
the order engine so every caller gets the same errors.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from storefront.models.order import OrderStatus, PaymentMethod


class OrderItemCreate(BaseModel):
    """One cart line (only JSON integers, no booleans or floats)"""
    product_id: int = Field(..., strict=True, description="Product ID")
    quantity: int = Field(..., strict=True, description="Quantity")


class OrderCreate(BaseModel):
    """Schema for placing an order"""
    items: List[OrderItemCreate] = Field(default_factory=list)
    shipping_address: str = ""
    phone_number: str = ""
    # None falls back to the configured default (cash on delivery)
    payment_method: Optional[str] = None
    # Accepted from older clients, compared against the computed total
    total_amount: Optional[Decimal] = None


class OrderStatusUpdate(BaseModel):
    """Schema for updating order status"""
    status: str = ""


class OrderItemResponse(BaseModel):
    """Order line with product display fields"""
    id: int
    product_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal
    # None when the product has since been removed from the catalog
    name: Optional[str] = None
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: int
    user_id: int
    username: Optional[str] = None
    email: Optional[str] = None
    status: OrderStatus
    total_amount: Decimal
    shipping_address: str
    phone_number: str
    payment_method: PaymentMethod
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCreatedResponse(BaseModel):
    message: str = "Order created successfully"
    order_id: int
    total_amount: Decimal


class OrderStatusResponse(BaseModel):
    message: str = "Order status updated successfully"
    order_id: int
    status: OrderStatus
