"""
Order placement and order status changes
"""
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from storefront.config import settings
from storefront.exceptions import (
    InsufficientStock,
    NotFound,
    PersistenceError,
    StorefrontError,
    ValidationError,
)
from storefront.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    TERMINAL_STATUSES,
    is_transition_allowed,
)
from storefront.models.schemas import OrderCreate
from storefront.services.access import Capability, Viewer, authorize
from storefront.services.catalog import CatalogAccessor
from decimal import Decimal
from opentelemetry import trace
import logging

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CENT = Decimal("0.01")


def validate_order_request(order_data: OrderCreate) -> PaymentMethod:
    """Check a checkout request before any storage access; returns the payment method."""
    if (
        not order_data.items
        or not order_data.shipping_address.strip()
        or not order_data.phone_number.strip()
    ):
        raise ValidationError("Order must include items, shipping address and phone number")

    for item in order_data.items:
        if item.quantity <= 0:
            raise ValidationError(
                f"Quantity for product with ID {item.product_id} must be a positive integer"
            )

    label = order_data.payment_method or settings.default_payment_method
    try:
        return PaymentMethod(label)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Invalid payment method. Must be one of: {allowed}")


class OrderService:
    """Order service for business logic"""

    def __init__(self, catalog: CatalogAccessor = None):
        self.catalog = catalog or CatalogAccessor()

    def place_order(self, db: Session, viewer: Viewer, order_data: OrderCreate) -> Order:
        """
        Turn a cart into an order in one unit of work

        Process:
        1. Validate the request (no storage access)
        2. Insert the order as pending
        3. Row-lock every product in the cart, in ascending id order
        4. Per cart line: read the product, check stock, record the line at
           the catalog price, decrement stock under a guard
        5. Store the computed total and commit

        Any failure rolls back the whole unit: no order, no lines and no
        stock change remain.
        """
        authorize(viewer, Capability.PLACE_ORDER)
        payment_method = validate_order_request(order_data)

        with tracer.start_as_current_span("order_service.place_order") as span:
            span.set_attribute("user.id", viewer.user_id)
            span.set_attribute("items.count", len(order_data.items))

            logger.info(
                f"Placing order for user {viewer.user_id} with {len(order_data.items)} items"
            )

            try:
                order = Order(
                    user_id=viewer.user_id,
                    status=OrderStatus.PENDING,
                    total_amount=Decimal("0"),
                    shipping_address=order_data.shipping_address.strip(),
                    phone_number=order_data.phone_number.strip(),
                    payment_method=payment_method,
                )
                db.add(order)
                db.flush()  # Get order ID

                # Lock in id order up front; lines are still checked in caller order
                self.catalog.lock_products(db, [item.product_id for item in order_data.items])

                total_amount = Decimal("0")
                for item_data in order_data.items:
                    total_amount += self._add_line(db, order, item_data.product_id, item_data.quantity)

                order.total_amount = total_amount.quantize(CENT)
                db.commit()
            except StorefrontError as e:
                db.rollback()
                logger.warning(f"Order for user {viewer.user_id} rolled back: {e.message}")
                span.set_attribute("order.rejected", e.code)
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Order for user {viewer.user_id} rolled back: {e}", exc_info=True)
                span.record_exception(e)
                raise PersistenceError("Failed to create order. Please try again.") from e
            except Exception:
                db.rollback()
                raise

            declared = order_data.total_amount
            if declared is not None and Decimal(declared).quantize(CENT) != order.total_amount:
                logger.warning(
                    f"Order {order.id}: client declared total {declared}, "
                    f"recorded {order.total_amount} from catalog prices"
                )

            span.set_attribute("order.id", order.id)
            span.set_attribute("order.total_amount", float(order.total_amount))
            logger.info(f"Order {order.id} created successfully")

            return order

    def _add_line(self, db: Session, order: Order, product_id: int, quantity: int) -> Decimal:
        """Record one cart line and take its stock; returns the line subtotal."""
        product = self.catalog.get_price_and_stock(db, product_id, lock=True)
        if product is None:
            raise NotFound("product", product_id)

        if product.stock < quantity:
            raise InsufficientStock(product_id, available=product.stock, requested=quantity)

        db.add(OrderItem(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            price=product.price,
        ))

        if not self.catalog.decrement_stock(db, product_id, quantity):
            current = self.catalog.get_price_and_stock(db, product_id)
            if current is None:
                raise NotFound("product", product_id)
            raise InsufficientStock(product_id, available=current.stock, requested=quantity)

        return product.price * quantity

    @staticmethod
    def set_status(db: Session, viewer: Viewer, order_id: int, new_status: str) -> OrderStatus:
        """Move an order to another status label (admin only)"""
        authorize(viewer, Capability.SET_ORDER_STATUS)

        try:
            status = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(OrderStatus.labels())}"
            )

        with tracer.start_as_current_span("order_service.set_status") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("status.new", status.value)

            try:
                order = db.query(Order).filter(Order.id == order_id).first()
                if not order:
                    raise NotFound("order", order_id)

                old_status = order.status
                if not is_transition_allowed(old_status, status):
                    raise ValidationError(
                        f"Order {order_id} cannot move from {old_status.value} to {status.value}"
                    )
                if old_status in TERMINAL_STATUSES and old_status != status:
                    logger.warning(f"Order {order_id} reopened from terminal status {old_status.value}")

                order.status = status
                db.commit()
            except StorefrontError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Status update for order {order_id} failed: {e}", exc_info=True)
                raise PersistenceError("Failed to update order status. Please try again.") from e

            span.set_attribute("status.old", old_status.value)
            logger.info(f"Order {order_id} status updated: {old_status.value} -> {status.value}")

            return status
