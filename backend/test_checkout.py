"""Checkout: cart to order, all-or-nothing."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import add_batch, auth_headers, make_product, make_user, put_in_cart
from quickpharma.core.config import settings
from quickpharma.models.cart import CartItem
from quickpharma.models.inventory import Inventory
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, PaymentMethodId
from quickpharma.models.order import Order, Payment, ProductOrder, Shipping
from quickpharma.services import checkout_service
from quickpharma.services.checkout_service import CheckoutRequest, create_order
from quickpharma.services.inventory_service import StockChangedError

NOW = datetime(2026, 3, 10, 8, 15)


def order_counts(db):
    return (
        db.query(Order).count(),
        db.query(Shipping).count(),
        db.query(Payment).count(),
        db.query(ProductOrder).count(),
    )


def test_pickup_order_consumes_stock_and_clears_cart(client, db, store):
    customer = store["customer"]
    product = make_product(db, "Panadol Extra", price="1.250")
    batch = add_batch(db, product, store["branch"], 5, None)
    put_in_cart(db, customer, product, 2)

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["created"] is True
    assert body["order_id"] > 0
    assert body["total"] == pytest.approx(2.5)

    db.expire_all()
    assert db.get(Inventory, batch.id).quantity == 3
    assert db.query(CartItem).filter(CartItem.user_id == customer.id).count() == 0
    order = db.get(Order, body["order_id"])
    assert order.payment.payment_method_id == PaymentMethodId.CASH
    assert order.payment.is_successful is False
    assert order.shipping.is_delivery is False
    change_log = db.query(Log).filter(Log.log_type_id == LogTypeId.INVENTORY_CHANGE).one()
    assert change_log.order_id == order.id
    assert change_log.inventory_id == batch.id


def test_prescribed_item_without_prescription_is_rejected(client, db, store):
    customer = store["customer"]
    product = make_product(db, "Augmentin 625", requires_prescription=True)
    add_batch(db, product, store["branch"], 10, None)
    put_in_cart(db, customer, product, 1)

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["created"] is False
    assert detail["message"] == "Approved prescription is required for prescribed items."
    assert order_counts(db) == (0, 0, 0, 0)


def test_delivery_into_full_slot_is_rejected(db, store, gateway):
    customer = store["customer"]
    product = make_product(db, "Zyrtec")
    add_batch(db, product, store["branch"], 10, None)
    put_in_cart(db, customer, product, 1)
    for _ in range(settings.NORMAL_SLOT_CAPACITY):
        db.add(Shipping(branch_id=store["branch"].id, is_delivery=True, is_urgent=False,
                        shipping_date=datetime.combine(NOW.date(), datetime.min.time()), slot_id=2))
    db.commit()

    req = CheckoutRequest(
        user_id=customer.id, mode="delivery", city_id=store["city"].id,
        block="10", road="20", building_floor="3",
        shipping_date=NOW.date(), slot_id=2,
    )
    result = create_order(db, req, gateway, now=NOW)

    assert result.created is False
    assert result.message == "Selected slot is full. Please choose another slot."
    assert db.query(Order).count() == 0
    assert db.query(Shipping).count() == settings.NORMAL_SLOT_CAPACITY


def test_delivery_order_adds_fee_and_books_slot(db, store, gateway):
    customer = store["customer"]
    product = make_product(db, "Nexium", price="3.000")
    add_batch(db, product, store["other_branch"], 4, None)
    put_in_cart(db, customer, product, 2)

    req = CheckoutRequest(
        user_id=customer.id, mode="delivery", city_id=store["other_city"].id,
        block="10", road="20", building_floor="3",
        shipping_date=NOW.date() + timedelta(days=2), slot_id=1,
    )
    result = create_order(db, req, gateway, now=NOW)

    assert result.created is True
    assert result.total == Decimal("6.000") + Decimal(settings.DELIVERY_FEE)
    shipping = db.get(Shipping, result.shipping_id)
    assert shipping.branch_id == store["other_branch"].id
    assert shipping.slot_id == 1
    assert shipping.address.city_id == store["other_city"].id


def test_second_urgent_order_in_same_slot_is_rejected(db, store, gateway):
    product = make_product(db, "Oral Rehydration Salts")
    add_batch(db, product, store["branch"], 10, None)
    first = make_user(db, "first@test.com")
    second = make_user(db, "second@test.com")
    put_in_cart(db, first, product, 1)
    put_in_cart(db, second, product, 1)

    def urgent_request(user):
        return CheckoutRequest(
            user_id=user.id, mode="delivery", city_id=store["city"].id,
            block="1", road="2", building_floor="3", is_urgent=True,
        )

    booked = create_order(db, urgent_request(first), gateway, now=NOW)
    rejected = create_order(db, urgent_request(second), gateway, now=NOW + timedelta(minutes=10))

    assert booked.created is True
    shipping = db.get(Shipping, booked.shipping_id)
    assert shipping.is_urgent is True
    assert shipping.slot_id is None
    assert shipping.shipping_date == NOW + timedelta(hours=1)
    assert rejected.created is False
    assert rejected.message == "Urgent delivery for this time slot is already booked."


def test_insufficient_branch_stock_lists_products(db, store, gateway):
    customer = store["customer"]
    scarce = make_product(db, "Insulin Pen")
    plenty = make_product(db, "Cotton Wool")
    add_batch(db, scarce, store["branch"], 1, None)
    add_batch(db, plenty, store["branch"], 10, None)
    put_in_cart(db, customer, scarce, 2)
    put_in_cart(db, customer, plenty, 1)

    req = CheckoutRequest(user_id=customer.id, mode="pickup", pickup_branch_id=store["branch"].id)
    result = create_order(db, req, gateway, now=NOW)

    assert result.created is False
    assert result.unavailable_product_names == ["Insulin Pen"]
    assert order_counts(db) == (0, 0, 0, 0)


def test_failure_during_write_phase_rolls_everything_back(db, store, gateway, monkeypatch):
    customer = store["customer"]
    first = make_product(db, "Strepsils")
    second = make_product(db, "Vicks")
    first_batch = add_batch(db, first, store["branch"], 5, None)
    second_batch = add_batch(db, second, store["branch"], 5, None)
    put_in_cart(db, customer, first, 2)
    put_in_cart(db, customer, second, 2)

    real_consume = checkout_service.consume_fefo

    def consume_then_fail(db_, branch_id, product_id, quantity, today=None):
        if product_id == second.id:
            raise StockChangedError(product_id, quantity, 0)
        return real_consume(db_, branch_id, product_id, quantity, today)

    monkeypatch.setattr(checkout_service, "consume_fefo", consume_then_fail)

    req = CheckoutRequest(user_id=customer.id, mode="pickup", pickup_branch_id=store["branch"].id)
    result = create_order(db, req, gateway, now=NOW)

    assert result.created is False
    assert "Stock changed" in result.message
    db.expire_all()
    assert order_counts(db) == (0, 0, 0, 0)
    assert db.get(Inventory, first_batch.id).quantity == 5
    assert db.get(Inventory, second_batch.id).quantity == 5
    assert db.query(CartItem).filter(CartItem.user_id == customer.id).count() == 2


def test_online_payment_requires_paid_session(db, store, gateway):
    customer = store["customer"]
    product = make_product(db, "Centrum")
    add_batch(db, product, store["branch"], 5, None)
    put_in_cart(db, customer, product, 1)

    req = CheckoutRequest(
        user_id=customer.id, mode="pickup", pickup_branch_id=store["branch"].id,
        payment_method="online", stripe_session_id="cs_test_123",
    )
    unpaid = create_order(db, req, gateway, now=NOW)
    gateway.paid_sessions.add("cs_test_123")
    paid = create_order(db, req, gateway, now=NOW)

    assert unpaid.created is False
    assert unpaid.message == "Online payment not completed."
    assert paid.created is True
    payment = db.query(Payment).one()
    assert payment.is_successful is True
    assert payment.external_session_id == "cs_test_123"


def test_paid_session_cannot_be_reused(db, store, gateway):
    customer = store["customer"]
    product = make_product(db, "Centrum")
    add_batch(db, product, store["branch"], 5, None)
    gateway.paid_sessions.add("cs_once")

    req = CheckoutRequest(
        user_id=customer.id, mode="pickup", pickup_branch_id=store["branch"].id,
        payment_method="online", stripe_session_id="cs_once",
    )
    put_in_cart(db, customer, product, 1)
    assert create_order(db, req, gateway, now=NOW).created is True

    put_in_cart(db, customer, product, 1)
    again = create_order(db, req, gateway, now=NOW)

    assert again.created is False


def test_empty_cart(db, store, gateway):
    req = CheckoutRequest(user_id=store["customer"].id, mode="pickup", pickup_branch_id=store["branch"].id)

    assert create_order(db, req, gateway, now=NOW).message == "Cart is empty."


def test_customer_cannot_order_for_someone_else(client, db, store):
    other = make_user(db, "other@test.com")

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": other.id, "mode": "pickup", "pickupBranchId": store["branch"].id},
        headers=auth_headers(store["customer"]),
    )

    assert resp.status_code == 403


def test_payment_session_priced_from_cart(client, db, store, gateway):
    customer = store["customer"]
    product = make_product(db, "Voltaren", price="4.500")
    put_in_cart(db, customer, product, 2)

    resp = client.post(
        "/api/stripe/create-checkout-session",
        json={"userId": customer.id, "isDelivery": True},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 200
    assert resp.json()["url"].startswith("https://pay.example.test/")
    items, fee = gateway.created[0]
    assert items == [{"name": "Voltaren", "price": Decimal("4.500"), "quantity": 2}]
    assert fee == Decimal(settings.DELIVERY_FEE)


def test_prescription_upload_checkout_creates_pending_prescription(client, db, store):
    from quickpharma.models.prescription import Prescription
    from quickpharma.models.lookup import PrescriptionStatusId

    customer = store["customer"]
    product = make_product(db, "Tramadol", requires_prescription=True, is_controlled=True)
    add_batch(db, product, store["branch"], 5, None)
    put_in_cart(db, customer, product, 1)

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={
            "userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id,
            "uploadNewPrescription": "true", "cityId": store["city"].id,
            "block": "1", "road": "2", "buildingFloor": "3",
        },
        files={
            "prescriptionFile": ("rx.pdf", b"%PDF-1.4 prescription", "application/pdf"),
            "cprFile": ("cpr.png", b"\x89PNG\r\n\x1a\ncpr", "image/png"),
        },
        headers=auth_headers(customer),
    )

    assert resp.status_code == 200
    body = resp.json()
    prescription = db.get(Prescription, body["created_prescription_id"])
    assert prescription.status_id == PrescriptionStatusId.PENDING
    assert prescription.is_health is False
    line = db.query(ProductOrder).filter(ProductOrder.order_id == body["order_id"]).one()
    assert line.prescription_id == prescription.id
