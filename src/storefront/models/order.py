"""
Order database models and the order status lifecycle
"""
from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from storefront.db.database import Base
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    """Order status enum"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def labels(cls):
        return [member.value for member in cls]


class PaymentMethod(str, enum.Enum):
    """Payment method enum (orders are paid on delivery)"""
    CASH_ON_DELIVERY = "cash_on_delivery"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def is_transition_allowed(current: OrderStatus, new: OrderStatus) -> bool:
    """
    Decide whether an order may move from ``current`` to ``new``.

    Any label may follow any other, backward moves included
    (``delivered`` -> ``pending`` is accepted). A forward-only lifecycle
    would be enforced here and nowhere else.
    """
    return True


class Order(Base):
    """Order model"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        SQLEnum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.PENDING,
        nullable=False
    )
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    shipping_address = Column(Text, nullable=False)
    phone_number = Column(String(50), nullable=False)
    payment_method = Column(
        SQLEnum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        default=PaymentMethod.CASH_ON_DELIVERY,
        nullable=False
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id"
    )

    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status}, total={self.total_amount})>"


class OrderItem(Base):
    """Order item model"""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # No foreign key: history must survive product deletion
    product_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self):
        return self.price * self.quantity

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
