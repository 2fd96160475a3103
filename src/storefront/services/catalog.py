"""Read access to product price and stock, plus the guarded stock decrement"""
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from storefront.models.product import Product
from typing import List, NamedTuple, Optional
from decimal import Decimal
from opentelemetry import trace
import logging

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PriceAndStock(NamedTuple):
    price: Decimal
    stock: int


class CatalogAccessor:
    """
    Product lookups addressed through the caller's session, so they run
    inside whatever transaction the caller has open.
    """

    @staticmethod
    def get_price_and_stock(db: Session, product_id: int, lock: bool = False) -> Optional[PriceAndStock]:
        """
        Current price and stock of a product, or None if it does not exist.

        With ``lock`` the row stays locked until the transaction ends on
        databases that support ``SELECT ... FOR UPDATE``.
        """
        with tracer.start_as_current_span("catalog.get_price_and_stock") as span:
            span.set_attribute("product.id", product_id)
            stmt = select(Product.price, Product.stock).where(Product.id == product_id)
            if lock:
                stmt = stmt.with_for_update()

            row = db.execute(stmt).first()
            if row is None:
                span.set_attribute("product.found", False)
                return None

            span.set_attribute("product.stock", row.stock)
            return PriceAndStock(price=Decimal(row.price), stock=row.stock)

    @staticmethod
    def lock_products(db: Session, product_ids) -> List[int]:
        """
        Row-lock every listed product in ascending id order.

        Checkouts touching overlapping products then queue up instead of
        deadlocking. Returns the ids that exist.
        """
        ids = sorted(set(product_ids))
        with tracer.start_as_current_span("catalog.lock_products") as span:
            span.set_attribute("products.count", len(ids))
            if not ids:
                return []

            stmt = (
                select(Product.id)
                .where(Product.id.in_(ids))
                .order_by(Product.id)
                .with_for_update()
            )
            return list(db.execute(stmt).scalars().all())

    @staticmethod
    def decrement_stock(db: Session, product_id: int, quantity: int) -> bool:
        """
        Take ``quantity`` units out of stock if at least that many remain.

        Returns False when the guard rejected the update (stock would go
        negative or the product is gone); nothing is changed in that case.
        """
        with tracer.start_as_current_span("catalog.decrement_stock") as span:
            span.set_attribute("product.id", product_id)
            span.set_attribute("quantity.reduce", quantity)

            stmt = (
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            result = db.execute(stmt)

            reduced = result.rowcount == 1
            span.set_attribute("stock.reduced", reduced)
            if not reduced:
                logger.warning(f"Stock guard rejected decrement of {quantity} for product {product_id}")
            return reduced
