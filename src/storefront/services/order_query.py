"""
Read paths for orders: customer history, admin listing, single order
"""
from sqlalchemy.orm import Session
from storefront.exceptions import NotFound
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.models.schemas import OrderItemResponse, OrderResponse
from storefront.services.access import Capability, Viewer, authorize, can_see_order
from typing import Dict, List, Optional
from opentelemetry import trace
import logging

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class OrderQueryService:
    """Order views enriched with lines, product display fields and owner"""

    @staticmethod
    def list_orders_for_user(db: Session, viewer: Viewer) -> List[OrderResponse]:
        """Orders owned by the caller, newest first"""
        authorize(viewer, Capability.READ_OWN_ORDERS)

        with tracer.start_as_current_span("order_query.list_orders_for_user") as span:
            span.set_attribute("user.id", viewer.user_id)
            orders = OrderQueryService._fetch(db, user_id=viewer.user_id)
            span.set_attribute("orders.returned", len(orders))
            return orders

    @staticmethod
    def list_all_orders(db: Session, viewer: Viewer) -> List[OrderResponse]:
        """Every order in the store, newest first (admin only)"""
        authorize(viewer, Capability.READ_ALL_ORDERS)

        with tracer.start_as_current_span("order_query.list_all_orders") as span:
            orders = OrderQueryService._fetch(db)
            span.set_attribute("orders.returned", len(orders))
            return orders

    @staticmethod
    def get_order(db: Session, viewer: Viewer, order_id: int) -> OrderResponse:
        """
        One order with its lines.

        A customer asking for somebody else's order gets the same NotFound
        as for a missing one.
        """
        authorize(viewer, Capability.READ_ORDER)

        with tracer.start_as_current_span("order_query.get_order") as span:
            span.set_attribute("order.id", order_id)

            orders = OrderQueryService._fetch(db, order_id=order_id)
            if not orders or not can_see_order(viewer, orders[0].user_id):
                logger.info(f"Order {order_id} not visible to user {viewer.user_id}")
                raise NotFound("order", order_id)

            return orders[0]

    @staticmethod
    def _fetch(
        db: Session,
        user_id: Optional[int] = None,
        order_id: Optional[int] = None
    ) -> List[OrderResponse]:
        query = (
            db.query(Order, User.username, User.email)
            .outerjoin(User, User.id == Order.user_id)
        )
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if order_id is not None:
            query = query.filter(Order.id == order_id)

        rows = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
        items = OrderQueryService._items_by_order(db, [order.id for order, _, _ in rows])

        return [
            OrderResponse(
                id=order.id,
                user_id=order.user_id,
                username=username,
                email=email,
                status=order.status,
                total_amount=order.total_amount,
                shipping_address=order.shipping_address,
                phone_number=order.phone_number,
                payment_method=order.payment_method,
                items=items.get(order.id, []),
                created_at=order.created_at,
                updated_at=order.updated_at,
            )
            for order, username, email in rows
        ]

    @staticmethod
    def _items_by_order(db: Session, order_ids: List[int]) -> Dict[int, List[OrderItemResponse]]:
        """Lines for a batch of orders; product fields are None for deleted products"""
        if not order_ids:
            return {}

        rows = (
            db.query(OrderItem, Product.name, Product.image_url)
            .outerjoin(Product, Product.id == OrderItem.product_id)
            .filter(OrderItem.order_id.in_(order_ids))
            .order_by(OrderItem.order_id, OrderItem.id)
            .all()
        )

        grouped: Dict[int, List[OrderItemResponse]] = {}
        for item, name, image_url in rows:
            grouped.setdefault(item.order_id, []).append(OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                subtotal=item.subtotal,
                name=name,
                image_url=image_url,
            ))
        return grouped
