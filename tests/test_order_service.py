from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from conftest import stock_of
from storefront.exceptions import (
    AuthenticationRequired,
    Forbidden,
    InsufficientStock,
    NotFound,
    PersistenceError,
    ValidationError,
)
from storefront.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from storefront.models.product import Product
from storefront.models.schemas import OrderCreate
from storefront.services.access import Anonymous
from storefront.services.catalog import CatalogAccessor
from storefront.services.order_service import OrderService


def cart(*lines, address="12 Tran Hung Dao, Hanoi", phone="0912345678", **extra):
    return OrderCreate(
        items=[{"product_id": pid, "quantity": qty} for pid, qty in lines],
        shipping_address=address,
        phone_number=phone,
        **extra
    )


@pytest.fixture
def service():
    return OrderService()


def test_place_order_records_lines_and_takes_stock(db, service, customer, make_product):
    product_id = make_product(price="100", stock=5)

    order = service.place_order(db, customer, cart((product_id, 2)))

    assert stock_of(product_id) == 3
    saved = db.get(Order, order.id)
    assert saved.user_id == customer.user_id
    assert saved.status == OrderStatus.PENDING
    assert saved.payment_method == PaymentMethod.CASH_ON_DELIVERY
    assert saved.total_amount == Decimal("200")
    assert [(i.product_id, i.quantity, i.price) for i in saved.items] == [
        (product_id, 2, Decimal("100"))
    ]


def test_insufficient_stock_leaves_nothing_behind(db, service, customer, make_product):
    product_id = make_product(stock=5)

    with pytest.raises(InsufficientStock) as excinfo:
        service.place_order(db, customer, cart((product_id, 10)))

    assert (excinfo.value.product_id, excinfo.value.available, excinfo.value.requested) == (
        product_id, 5, 10
    )
    assert stock_of(product_id) == 5
    assert db.query(Order).count() == 0


def test_missing_product_rolls_back_earlier_lines(db, service, customer, make_product):
    product_id = make_product(stock=5)

    with pytest.raises(NotFound) as excinfo:
        service.place_order(db, customer, cart((product_id, 1), (999, 1)))

    assert excinfo.value.resource == "product"
    assert excinfo.value.identifier == 999
    assert stock_of(product_id) == 5
    assert db.query(Order).count() == 0
    assert db.query(OrderItem).count() == 0


def test_line_price_is_captured_at_purchase(db, service, customer, make_product):
    product_id = make_product(price="100", stock=5)
    order = service.place_order(db, customer, cart((product_id, 1)))

    product = db.get(Product, product_id)
    product.price = Decimal("250")
    db.commit()

    db.expire_all()
    assert db.get(Order, order.id).items[0].price == Decimal("100")


def test_client_total_is_not_trusted(db, service, customer, make_product):
    cheap = make_product(price="19.99", stock=5)
    other = make_product(price="5.01", stock=5, name="Socks")

    order = service.place_order(
        db, customer, cart((cheap, 2), (other, 1), total_amount=Decimal("1"))
    )

    assert db.get(Order, order.id).total_amount == Decimal("44.99")


def test_repeated_product_lines_share_the_stock(db, service, customer, make_product):
    product_id = make_product(stock=3)

    with pytest.raises(InsufficientStock) as excinfo:
        service.place_order(db, customer, cart((product_id, 2), (product_id, 2)))

    assert excinfo.value.available == 1
    assert stock_of(product_id) == 3


@pytest.mark.parametrize("request_kwargs", [
    {"items": []},
    {"items": [{"product_id": 1, "quantity": 1}], "shipping_address": "   ", "phone_number": "0912"},
    {"items": [{"product_id": 1, "quantity": 1}], "shipping_address": "Hanoi", "phone_number": ""},
    {"items": [{"product_id": 1, "quantity": 0}], "shipping_address": "Hanoi", "phone_number": "0912"},
    {"items": [{"product_id": 1, "quantity": -3}], "shipping_address": "Hanoi", "phone_number": "0912"},
    {
        "items": [{"product_id": 1, "quantity": 1}],
        "shipping_address": "Hanoi",
        "phone_number": "0912",
        "payment_method": "credit_card",
    },
])
def test_malformed_requests_fail_before_storage(service, customer, request_kwargs):
    # No session at all: validation must not reach the database
    with pytest.raises(ValidationError):
        service.place_order(None, customer, OrderCreate(**request_kwargs))


def test_anonymous_checkout_is_rejected(service, make_product):
    with pytest.raises(AuthenticationRequired):
        service.place_order(None, Anonymous(), cart((1, 1)))


def test_storage_failure_surfaces_as_persistence_error(db, customer, make_product):
    product_id = make_product(stock=5)

    class BrokenCatalog(CatalogAccessor):
        @staticmethod
        def decrement_stock(db, product_id, quantity):
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

    with pytest.raises(PersistenceError):
        OrderService(BrokenCatalog()).place_order(db, customer, cart((product_id, 1)))

    assert stock_of(product_id) == 5
    assert db.query(Order).count() == 0


def test_admin_moves_order_to_shipped(db, service, customer, admin, make_product):
    order = service.place_order(db, customer, cart((make_product(), 1)))

    assert OrderService.set_status(db, admin, order.id, "shipped") == OrderStatus.SHIPPED
    db.expire_all()
    assert db.get(Order, order.id).status == OrderStatus.SHIPPED


def test_unknown_status_label_is_rejected(db, service, customer, admin, make_product):
    order = service.place_order(db, customer, cart((make_product(), 1)))

    with pytest.raises(ValidationError):
        OrderService.set_status(db, admin, order.id, "bogus")

    db.expire_all()
    assert db.get(Order, order.id).status == OrderStatus.PENDING


def test_status_can_move_backward(db, service, customer, admin, make_product):
    order = service.place_order(db, customer, cart((make_product(), 1)))

    OrderService.set_status(db, admin, order.id, "delivered")
    assert OrderService.set_status(db, admin, order.id, "pending") == OrderStatus.PENDING


def test_status_change_leaves_other_fields_alone(db, service, customer, admin, make_product):
    order = service.place_order(db, customer, cart((make_product(), 2)))
    before = db.get(Order, order.id)
    snapshot = (before.total_amount, before.shipping_address, before.phone_number, before.user_id)

    OrderService.set_status(db, admin, order.id, "cancelled")

    db.expire_all()
    after = db.get(Order, order.id)
    assert (after.total_amount, after.shipping_address, after.phone_number, after.user_id) == snapshot


def test_customers_cannot_change_status(db, service, customer, make_product):
    order = service.place_order(db, customer, cart((make_product(), 1)))

    with pytest.raises(Forbidden):
        OrderService.set_status(db, customer, order.id, "shipped")


def test_status_of_missing_order(db, admin):
    with pytest.raises(NotFound):
        OrderService.set_status(db, admin, 12345, "shipped")


def test_stock_guard_rejects_a_stale_read(db, customer, make_product):
    product_id = make_product(stock=2)

    class StaleCatalog(CatalogAccessor):
        @staticmethod
        def get_price_and_stock(db, product_id, lock=False):
            current = CatalogAccessor.get_price_and_stock(db, product_id, lock=lock)
            # The locked read sees stock that has since been sold
            return current._replace(stock=99) if lock else current

    with pytest.raises(InsufficientStock) as excinfo:
        OrderService(StaleCatalog()).place_order(db, customer, cart((product_id, 3)))

    assert (excinfo.value.available, excinfo.value.requested) == (2, 3)
    assert stock_of(product_id) == 2
    assert db.query(Order).count() == 0


def test_products_are_locked_in_id_order_before_lines_are_read(db, customer, make_product):
    low = make_product(name="Belt")
    high = make_product(name="Jacket")
    calls = []

    class RecordingCatalog(CatalogAccessor):
        @staticmethod
        def lock_products(db, product_ids):
            locked = CatalogAccessor.lock_products(db, product_ids)
            calls.append(("lock", locked))
            return locked

        @staticmethod
        def get_price_and_stock(db, product_id, lock=False):
            calls.append(("read", product_id))
            return CatalogAccessor.get_price_and_stock(db, product_id, lock=lock)

    OrderService(RecordingCatalog()).place_order(db, customer, cart((high, 1), (low, 1)))

    assert calls == [("lock", [low, high]), ("read", high), ("read", low)]


def test_status_storage_failure_surfaces_as_persistence_error(
    db, service, customer, admin, make_product, monkeypatch
):
    order = service.place_order(db, customer, cart((make_product(), 1)))
    order_id = order.id

    def failing_commit():
        raise OperationalError("UPDATE orders", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)

    with pytest.raises(PersistenceError):
        OrderService.set_status(db, admin, order_id, "shipped")

    monkeypatch.undo()
    db.expire_all()
    assert db.get(Order, order_id).status == OrderStatus.PENDING
