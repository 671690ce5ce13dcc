from decimal import Decimal

import pytest
from pydantic import ValidationError

from common.exceptions import (
    EmptyCartError, ItemsUnavailableError, InsufficientStockError, NotFoundError, NotCancellableError,
    StateTransitionError,
)
from common.owner import GuestOwner
from config.settings import PICKUP_ADDRESS
from modules.cart.models import CartItem
from modules.cart.service import cart_service
from modules.catalog.models import Product
from modules.catalog.service import catalog_service
from modules.customer.models import Address
from modules.order.models import (
    Order, OrderItem, OrderSequence, OrderStatus, PaymentStatus,
    ORDER_TRANSITIONS, CANCELLABLE_STATUSES, can_transition,
)
from modules.order.schemas import CheckoutData
from modules.order.service import order_service


def order_count(db):
    return db.query(Order).count()


class TestCreateOrder:

    def test_creates_pending_order_and_clears_cart(self, db, user, make_product, checkout_data):
        a = make_product(name="A", price="500.00", stock=10)
        b = make_product(name="B", price="250.00", stock=4)
        cart_service.add_item(db, user, a.id, 2)
        cart_service.add_item(db, user, b.id, 2)

        order = order_service.create_order(db, user, checkout_data)

        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.order_number.startswith("ORD-")
        assert order.user_id == user.user_id and order.session_id is None
        assert [(i.product_name, i.quantity, i.price, i.total) for i in order.items] == [
            ("A", 2, Decimal("500.00"), Decimal("1000.00")),
            ("B", 2, Decimal("250.00"), Decimal("500.00")),
        ]
        assert order.subtotal == Decimal("1500.00")
        assert order.delivery_cost == Decimal("300.00")
        assert order.total == Decimal("1800.00")
        assert cart_service.is_empty(db, user)

        db.refresh(a)
        db.refresh(b)
        assert a.stock == 8
        assert b.stock == 2

    def test_total_invariants(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product(price="1750.00").id, 2)
        order = order_service.create_order(db, user, checkout_data)

        assert order.subtotal == sum(i.total for i in order.items)
        assert order.total == order.subtotal + order.delivery_cost - order.discount
        assert order.total == order.calculated_total
        assert order.discount == Decimal("175.00")
        assert order.total == Decimal("3325.00")

    def test_preview_matches_created_order(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product(price="333.33").id, 3)
        preview = order_service.calculate_order_total(
            cart_service.get_cart_items(db, user), "courier", user,
        )

        order = order_service.create_order(db, user, checkout_data)

        assert preview == {
            "subtotal": order.subtotal,
            "delivery_cost": order.delivery_cost,
            "discount": order.discount,
            "total": order.total,
        }

    def test_uses_snapshot_price_not_catalog_price(self, db, user, make_product, checkout_data):
        product = make_product(price="500.00")
        cart_service.add_item(db, user, product.id, 1)
        product.price = Decimal("600.00")
        db.flush()

        order = order_service.create_order(db, user, checkout_data)
        assert order.items[0].price == Decimal("500.00")

    def test_accepts_checkout_model(self, db, guest, make_product, checkout_data):
        cart_service.add_item(db, guest, make_product().id, 1)
        order = order_service.create_order(db, guest, CheckoutData(**checkout_data))
        assert order.session_id == guest.session_id and order.user_id is None

    def test_pickup_uses_store_address(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        checkout_data.update(delivery_method="pickup", address="")
        order = order_service.create_order(db, user, checkout_data)
        assert order.delivery_address == PICKUP_ADDRESS
        assert order.delivery_cost == Decimal("0.00")

    def test_empty_cart(self, db, user, checkout_data):
        with pytest.raises(EmptyCartError):
            order_service.create_order(db, user, checkout_data)
        assert order_count(db) == 0

    def test_unavailable_lines_are_listed_and_nothing_changes(self, db, user, make_product, checkout_data):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=5)
        cart_service.add_item(db, user, a.id, 1)
        cart_service.add_item(db, user, b.id, 5)
        b.stock = 3
        db.flush()

        with pytest.raises(ItemsUnavailableError) as exc_info:
            order_service.create_order(db, user, checkout_data)

        assert [it["product_name"] for it in exc_info.value.items] == ["B"]
        assert order_count(db) == 0
        assert cart_service.get_items_quantity(db, user) == 2
        db.refresh(a)
        assert a.stock == 10

    def test_failure_midway_rolls_everything_back(self, db, user, make_product, checkout_data, monkeypatch):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        cart_service.add_item(db, user, a.id, 2)
        cart_service.add_item(db, user, b.id, 3)

        real_decrement = catalog_service.decrement_stock

        def decrement_then_fail(session, product_id, quantity):
            if product_id == b.id:
                raise InsufficientStockError("B", quantity, 0)
            return real_decrement(session, product_id, quantity)

        monkeypatch.setattr(catalog_service, "decrement_stock", decrement_then_fail)

        with pytest.raises(InsufficientStockError):
            order_service.create_order(db, user, checkout_data)

        db.expire_all()
        assert order_count(db) == 0
        assert db.query(OrderSequence).count() == 0
        assert a.stock == 10 and b.stock == 10
        assert cart_service.get_items_count(db, user) == 5

    def test_stock_sold_after_availability_check(self, db, user, make_product, checkout_data, monkeypatch):
        other = make_product(name="Other", stock=10)
        product = make_product(name="Widget", stock=5)
        cart_service.add_item(db, user, other.id, 1)
        cart_service.add_item(db, user, product.id, 3)

        real_check = cart_service.check_availability

        def check_then_sell_out(session, owner):
            result = real_check(session, owner)
            # another checkout takes 3 units between the check and the decrement
            session.query(Product).filter(Product.id == product.id).update(
                {Product.stock: 2}, synchronize_session=False,
            )
            return result

        monkeypatch.setattr(cart_service, "check_availability", check_then_sell_out)

        with pytest.raises(InsufficientStockError) as exc_info:
            order_service.create_order(db, user, checkout_data)

        assert str(exc_info.value) == "Insufficient stock: Widget (available: 2, requested: 3)"
        assert exc_info.value.available == 2 and exc_info.value.requested == 3

        db.expire_all()
        assert product.stock == 2
        assert other.stock == 10
        assert order_count(db) == 0
        assert db.query(OrderItem).count() == 0
        assert db.query(OrderSequence).count() == 0
        assert cart_service.get_items_count(db, user) == 4

    def test_order_numbers_are_sequential(self, db, user, make_product, checkout_data):
        product = make_product(stock=10)
        numbers = []
        for _ in range(3):
            cart_service.add_item(db, user, product.id, 1)
            numbers.append(order_service.create_order(db, user, checkout_data).order_number)

        sequences = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert sequences == [1, 2, 3]
        assert len(set(numbers)) == 3


class TestCancelOrder:

    def _place(self, db, owner, make_product, checkout_data, stock=10, qty=3):
        product = make_product(stock=stock)
        cart_service.add_item(db, owner, product.id, qty)
        return product, order_service.create_order(db, owner, checkout_data)

    def test_restores_stock(self, db, user, make_product, checkout_data):
        product, order = self._place(db, user, make_product, checkout_data)
        db.refresh(product)
        assert product.stock == 7

        order = order_service.cancel_order(db, order, "Changed my mind")

        db.refresh(product)
        assert product.stock == 10
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_at is not None
        assert "Changed my mind" in order.admin_notes
        assert order.status_logs[-1].note == "Changed my mind"

    @pytest.mark.parametrize("status", ["processing", "paid"])
    def test_cancellable_statuses(self, db, user, make_product, checkout_data, status):
        product, order = self._place(db, user, make_product, checkout_data)
        if status == "processing":
            order_service.start_processing(db, order)
        else:
            order_service.mark_as_paid(db, order)

        order_service.cancel_order(db, order)
        db.refresh(product)
        assert product.stock == 10

    def test_paid_order_keeps_paid_at_after_cancel(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)
        order = order_service.mark_as_paid(db, order)
        order = order_service.cancel_order(db, order)
        assert order.paid_at is not None
        assert order.is_paid and order.is_cancelled

    @pytest.mark.parametrize("path", [
        ["start_processing", "mark_as_shipped"],
        ["start_processing", "mark_as_shipped", "mark_as_delivered"],
        ["cancel_order"],
    ])
    def test_not_cancellable(self, db, user, make_product, checkout_data, path):
        product, order = self._place(db, user, make_product, checkout_data)
        for step in path:
            order = getattr(order_service, step)(db, order)
        db.refresh(product)
        stock_before = product.stock

        with pytest.raises(NotCancellableError):
            order_service.cancel_order(db, order)

        db.refresh(product)
        assert product.stock == stock_before

    def test_failure_midway_restores_nothing(self, db, user, make_product, checkout_data, monkeypatch):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        cart_service.add_item(db, user, a.id, 2)
        cart_service.add_item(db, user, b.id, 3)
        order = order_service.create_order(db, user, checkout_data)

        real_increment = catalog_service.increment_stock

        def increment_then_fail(session, product_id, quantity):
            if product_id == b.id:
                raise RuntimeError("connection lost")
            return real_increment(session, product_id, quantity)

        monkeypatch.setattr(catalog_service, "increment_stock", increment_then_fail)

        with pytest.raises(RuntimeError):
            order_service.cancel_order(db, order, "Changed my mind")

        db.expire_all()
        assert (a.stock, b.stock) == (8, 7)
        order = order_service.get_order_by_id(db, order.id)
        assert order.status == OrderStatus.PENDING.value
        assert order.cancelled_at is None
        assert order.admin_notes is None
        assert len(order.status_logs) == 1


class TestMarkAsPaid:

    def _place(self, db, owner, make_product, checkout_data):
        product = make_product(stock=10)
        cart_service.add_item(db, owner, product.id, 3)
        return product, order_service.create_order(db, owner, checkout_data)

    def test_pending_order_becomes_paid(self, db, user, make_product, checkout_data):
        product, order = self._place(db, user, make_product, checkout_data)

        order = order_service.mark_as_paid(db, order)

        assert order.status == OrderStatus.PAID.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.paid_at is not None
        assert order.is_paid
        assert [log.to_status for log in order.status_logs] == ["pending", "paid"]
        db.refresh(product)
        assert product.stock == 7

    def test_processing_order_becomes_paid(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)
        order = order_service.start_processing(db, order)

        order = order_service.mark_as_paid(db, order)

        assert order.status == OrderStatus.PAID.value
        assert order.status_logs[-1].from_status == "processing"

    def test_paying_twice_changes_nothing(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)
        order = order_service.mark_as_paid(db, order)
        paid_at = order.paid_at
        logs = len(order.status_logs)

        order = order_service.mark_as_paid(db, order)

        assert order.status == OrderStatus.PAID.value
        assert order.paid_at == paid_at
        assert len(order.status_logs) == logs

    @pytest.mark.parametrize("path", [
        ["cancel_order"],
        ["start_processing", "mark_as_shipped"],
        ["start_processing", "mark_as_shipped", "mark_as_delivered"],
    ])
    def test_closed_or_shipped_order_cannot_be_paid(self, db, user, make_product, checkout_data, path):
        _, order = self._place(db, user, make_product, checkout_data)
        for step in path:
            order = getattr(order_service, step)(db, order)
        status_before = order.status

        with pytest.raises(StateTransitionError):
            order_service.mark_as_paid(db, order)

        order = order_service.get_order_by_id(db, order.id)
        assert order.status == status_before
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.paid_at is None

    def test_payment_failed_keeps_status(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)

        order = order_service.mark_payment_failed(db, order)

        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.status == OrderStatus.PENDING.value
        assert len(order.status_logs) == 1

    def test_failed_payment_can_still_be_paid(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)
        order = order_service.mark_payment_failed(db, order)

        order = order_service.mark_as_paid(db, order)

        assert order.payment_status == PaymentStatus.PAID.value

    def test_paid_order_cannot_fail_payment(self, db, user, make_product, checkout_data):
        _, order = self._place(db, user, make_product, checkout_data)
        order = order_service.mark_as_paid(db, order)

        with pytest.raises(StateTransitionError):
            order_service.mark_payment_failed(db, order)

        assert order_service.get_order_by_id(db, order.id).payment_status == PaymentStatus.PAID.value


class TestStatusMachine:

    def test_every_status_has_transitions(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    def test_terminal_statuses(self):
        assert ORDER_TRANSITIONS[OrderStatus.DELIVERED] == frozenset()
        assert ORDER_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()

    def test_cancellable_statuses(self):
        assert CANCELLABLE_STATUSES == {OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.PAID}

    def test_accepts_plain_strings(self):
        assert can_transition("pending", "paid")
        assert not can_transition("shipped", OrderStatus.CANCELLED)


class TestDeliveryAddress:

    NEW_ADDRESS = {
        "city": "Moscow",
        "street": "Tverskaya",
        "house": "1",
        "apartment": "5",
        "postal_code": "125009",
    }

    def _checkout(self, checkout_data, **changes):
        data = dict(checkout_data, address="")
        data.update(changes)
        return data

    def test_new_address_is_saved_for_user(self, db, user, make_product, checkout_data):
        product = make_product(stock=10)
        cart_service.add_item(db, user, product.id, 1)

        order = order_service.create_order(
            db, user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS),
        )

        addresses = db.query(Address).filter(Address.user_id == user.user_id).all()
        assert len(addresses) == 1
        assert addresses[0].is_default
        assert addresses[0].phone == checkout_data["phone"]
        assert order.delivery_address == "Moscow, Tverskaya, 1, apt. 5, 125009"
        assert order.delivery_address == addresses[0].full_address

        cart_service.add_item(db, user, product.id, 1)
        second = dict(self.NEW_ADDRESS, street="Arbat", house="10")
        order_service.create_order(db, user, self._checkout(checkout_data, new_address=second))

        rows = db.query(Address.street, Address.is_default).order_by(Address.id).all()
        assert rows == [("Tverskaya", True), ("Arbat", False)]

    def test_saved_address_is_used_by_id(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order_service.create_order(db, user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS))
        address = db.query(Address).one()

        cart_service.add_item(db, user, make_product(name="Other").id, 1)
        order = order_service.create_order(db, user, self._checkout(checkout_data, address_id=address.id))

        assert order.delivery_address == address.full_address
        assert db.query(Address).count() == 1

    def test_foreign_address_is_not_found(self, db, user, other_user, make_product, checkout_data):
        product = make_product(stock=10)
        cart_service.add_item(db, other_user, product.id, 1)
        order_service.create_order(
            db, other_user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS),
        )
        foreign = db.query(Address).one()
        cart_service.add_item(db, user, product.id, 2)

        with pytest.raises(NotFoundError):
            order_service.create_order(db, user, self._checkout(checkout_data, address_id=foreign.id))

        db.expire_all()
        assert order_count(db) == 1
        assert product.stock == 9
        assert cart_service.get_items_count(db, user) == 2

    def test_missing_address_is_not_found(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        with pytest.raises(NotFoundError):
            order_service.create_order(db, user, self._checkout(checkout_data, address_id=999))
        assert order_count(db) == 0

    def test_guest_new_address_is_not_saved(self, db, guest, make_product, checkout_data):
        cart_service.add_item(db, guest, make_product().id, 1)

        order = order_service.create_order(
            db, guest, self._checkout(checkout_data, new_address=self.NEW_ADDRESS),
        )

        assert order.delivery_address == "Moscow, Tverskaya, 1, apt. 5, 125009"
        assert db.query(Address).count() == 0

    def test_guest_address_id_is_not_found(self, db, user, guest, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order_service.create_order(db, user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS))
        address = db.query(Address).one()
        cart_service.add_item(db, guest, make_product(name="Other").id, 1)

        with pytest.raises(NotFoundError):
            order_service.create_order(db, guest, self._checkout(checkout_data, address_id=address.id))

    def test_delivery_details_follow_the_address(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        new_address = dict(self.NEW_ADDRESS, entrance="2", floor=4, intercom="5K")

        order = order_service.create_order(db, user, self._checkout(checkout_data, new_address=new_address))

        assert order.delivery_address == (
            "Moscow, Tverskaya, 1, apt. 5, 125009 (entrance 2, floor 4, intercom 5K)"
        )
        assert db.query(Address).one().full_address == "Moscow, Tverskaya, 1, apt. 5, 125009"

    def test_failed_checkout_does_not_save_address(self, db, user, make_product, checkout_data, monkeypatch):
        product = make_product(stock=10)
        cart_service.add_item(db, user, product.id, 1)

        def out_of_stock(session, product_id, quantity):
            raise InsufficientStockError("Widget", quantity, 0)

        monkeypatch.setattr(catalog_service, "decrement_stock", out_of_stock)

        with pytest.raises(InsufficientStockError):
            order_service.create_order(db, user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS))

        assert db.query(Address).count() == 0
        assert order_count(db) == 0

    def test_address_id_wins_over_new_address(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order_service.create_order(db, user, self._checkout(checkout_data, new_address=self.NEW_ADDRESS))
        address = db.query(Address).one()
        cart_service.add_item(db, user, make_product(name="Other").id, 1)

        other = dict(self.NEW_ADDRESS, street="Arbat")
        order = order_service.create_order(
            db, user, self._checkout(checkout_data, address_id=address.id, new_address=other),
        )

        assert order.delivery_address == address.full_address
        assert db.query(Address).count() == 1


class TestCheckoutData:

    def test_courier_needs_an_address(self, checkout_data):
        with pytest.raises(ValidationError):
            CheckoutData(**dict(checkout_data, address="   "))

    def test_pickup_needs_no_address(self, checkout_data):
        data = CheckoutData(**dict(checkout_data, address="", delivery_method="pickup"))
        assert data.address_id is None and data.new_address is None

    def test_postal_code_must_be_six_digits(self, checkout_data):
        bad = dict(TestDeliveryAddress.NEW_ADDRESS, postal_code="12AB")
        with pytest.raises(ValidationError):
            CheckoutData(**dict(checkout_data, address="", new_address=bad))

    def test_address_id_must_be_positive(self, checkout_data):
        with pytest.raises(ValidationError):
            CheckoutData(**dict(checkout_data, address_id=0))


class TestQueries:

    def test_owner_scoped_lookup(self, db, user, other_user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order = order_service.create_order(db, user, checkout_data)

        assert order_service.get_owner_order(db, user, order.id) is order
        with pytest.raises(NotFoundError):
            order_service.get_owner_order(db, other_user, order.id)
        with pytest.raises(NotFoundError):
            order_service.get_owner_order(db, user, 9999)

    def test_guest_orders_are_isolated(self, db, guest, make_product, checkout_data):
        cart_service.add_item(db, guest, make_product().id, 1)
        order = order_service.create_order(db, guest, checkout_data)

        assert order_service.get_owner_orders(db, guest) == [order]
        assert order_service.get_owner_orders(db, GuestOwner("another-session")) == []

    def test_status_filter_and_counts(self, db, user, make_product, checkout_data):
        product = make_product(stock=10)
        orders = []
        for _ in range(3):
            cart_service.add_item(db, user, product.id, 1)
            orders.append(order_service.create_order(db, user, checkout_data))
        order_service.cancel_order(db, orders[0])

        assert order_service.get_owner_orders(db, user, "cancelled") == [orders[0]]
        assert len(order_service.get_owner_orders(db, user, "pending")) == 2

        counts = order_service.get_status_counts(db, user)
        assert counts["all"] == 3
        assert counts["pending"] == 2
        assert counts["cancelled"] == 1
        assert counts["delivered"] == 0

    def test_get_order_by_id(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order = order_service.create_order(db, user, checkout_data)
        assert order_service.get_order_by_id(db, order.id) is order
        assert order_service.get_all_orders(db, "pending") == [order]
        with pytest.raises(NotFoundError):
            order_service.get_order_by_id(db, 9999)


class TestReorder:

    def test_puts_lines_back_at_current_price(self, db, user, make_product, checkout_data):
        a = make_product(name="A", price="100.00", stock=10)
        b = make_product(name="B", price="200.00", stock=10)
        cart_service.add_item(db, user, a.id, 2)
        cart_service.add_item(db, user, b.id, 1)
        order = order_service.create_order(db, user, checkout_data)

        a.price = Decimal("120.00")
        b.is_available = False
        db.flush()

        result = order_service.reorder(db, user, order)

        assert result == {"added": 1, "unavailable": ["B"]}
        items = db.query(CartItem).filter(CartItem.user_id == user.user_id).all()
        assert [(i.product_id, i.quantity, i.price) for i in items] == [(a.id, 2, Decimal("120.00"))]


class TestPayment:

    def test_offline_methods_have_no_payment_url(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        order = order_service.create_order(db, user, checkout_data)
        assert order_service.process_payment(order)["payment_url"] is None

    def test_online_payment_returns_url(self, db, user, make_product, checkout_data):
        cart_service.add_item(db, user, make_product().id, 1)
        checkout_data["payment_method"] = "online"
        order = order_service.create_order(db, user, checkout_data)
        result = order_service.process_payment(order)
        assert result["payment_url"].endswith(f"/api/orders/{order.id}")
