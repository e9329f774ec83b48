"""Health prescriptions, staff review and checkout validation."""
from datetime import date, datetime, timedelta

from conftest import auth_headers, make_product, make_user, put_in_cart
from quickpharma.core.clock import local_today
from quickpharma.models.location import Address
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, PrescriptionStatusId
from quickpharma.models.prescription import Approval, Prescription
from quickpharma.services.prescription_service import (
    approve_prescription, expire_health_prescriptions, validate_checkout_prescription,
)

PDF = ("rx.pdf", b"%PDF-1.4 test prescription", "application/pdf")
PNG = ("cpr.png", b"\x89PNG\r\n\x1a\nfake-cpr", "image/png")


def make_prescription(db, user, city, status_id=PrescriptionStatusId.PENDING, is_health=True, name="Blood pressure"):
    address = Address(city_id=city.id, block="1", road="2", building_floor="3")
    db.add(address)
    db.flush()
    p = Prescription(
        user_id=user.id, name=name, status_id=status_id, creation_date=local_today(),
        is_health=is_health, address_id=address.id,
        document=PDF[1], document_content_type="application/pdf", document_file_name="rx.pdf",
        cpr_document=PNG[1], cpr_document_content_type="image/png", cpr_document_file_name="cpr.png",
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def add_approval(db, prescription, product, quantity, expiry: date, when: datetime = None):
    when = when or datetime(2026, 1, 1, 9, 0)
    approval = Approval(
        prescription_id=prescription.id, product_id=product.id, product_name=product.name,
        quantity=quantity, dosage="1 tablet daily", prescription_expiry_date=expiry,
        approval_date=when.date(), timestamp=when,
    )
    db.add(approval)
    prescription.status_id = PrescriptionStatusId.APPROVED
    db.commit()
    return approval


def test_customer_uploads_health_prescription(client, db, store):
    customer = store["customer"]

    resp = client.post(
        f"/api/Prescription/user/{customer.id}/health",
        data={"prescriptionName": "Diabetes", "cityId": store["city"].id,
              "block": "12", "road": "34", "buildingFloor": "5"},
        files={"prescriptionFile": PDF, "cprFile": PNG},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["status_id"] == PrescriptionStatusId.PENDING
    assert body["is_health"] is True
    assert body["has_prescription_document"] is True
    assert body["city_id"] == store["city"].id


def test_upload_without_files_is_rejected(client, store):
    customer = store["customer"]

    resp = client.post(
        f"/api/Prescription/user/{customer.id}/health",
        data={"prescriptionName": "Diabetes", "cityId": store["city"].id,
              "block": "12", "road": "34", "buildingFloor": "5"},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "FILES_REQUIRED"


def test_customer_cannot_read_another_customers_prescriptions(client, db, store):
    other = make_user(db, "other@test.com")

    resp = client.get(f"/api/Prescription/user/{other.id}/health", headers=auth_headers(store["customer"]))

    assert resp.status_code == 403


def test_pharmacist_approval_writes_logs(client, db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["city"])
    product = make_product(db, "Tramadol 50mg", requires_prescription=True, is_controlled=True)

    resp = client.post(
        f"/api/Prescription/{p.id}/approve",
        json={"productId": product.id, "quantity": 30, "dosage": "1 capsule at night",
              "expiryDate": future_expiry.isoformat()},
        headers=auth_headers(store["pharmacist"]),
    )

    assert resp.status_code == 200
    assert resp.json()["approved"] is True
    db.refresh(p)
    assert p.status_id == PrescriptionStatusId.APPROVED
    approval = db.query(Approval).filter(Approval.prescription_id == p.id).one()
    assert approval.product_name == "Tramadol 50mg"
    assert approval.user_id == store["pharmacist"].id
    log_types = {row.log_type_id for row in db.query(Log).all()}
    assert LogTypeId.PRESCRIPTION_APPROVAL in log_types
    assert LogTypeId.CONTROLLED_DISPENSED in log_types


def test_approval_rejects_past_expiry(client, db, store):
    p = make_prescription(db, store["customer"], store["city"])
    product = make_product(db, "Lisinopril", requires_prescription=True)

    resp = client.post(
        f"/api/Prescription/{p.id}/approve",
        json={"productId": product.id, "quantity": 30, "dosage": "daily",
              "expiryDate": (local_today() - timedelta(days=1)).isoformat()},
        headers=auth_headers(store["pharmacist"]),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "EXPIRY_IN_PAST"


def test_pharmacist_of_other_branch_cannot_review(client, db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["other_city"])

    resp = client.post(
        f"/api/Prescription/{p.id}/reject",
        json={"reason": "Unreadable"},
        headers=auth_headers(store["pharmacist"]),
    )

    assert resp.status_code == 403
    db.refresh(p)
    assert p.status_id == PrescriptionStatusId.PENDING


def test_reject_only_pending(client, db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["city"])
    headers = auth_headers(store["pharmacist"])

    first = client.post(f"/api/Prescription/{p.id}/reject", json={"reason": "Unreadable"}, headers=headers)
    second = client.post(f"/api/Prescription/{p.id}/reject", json={}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 409
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.PRESCRIPTION_REJECTION).count() == 1


def test_rejected_prescription_cannot_be_approved(db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["city"], status_id=PrescriptionStatusId.REJECTED)
    product = make_product(db, "Atorvastatin", requires_prescription=True)

    result = approve_prescription(db, p.id, store["pharmacist"].id, product.id, 10, "daily", future_expiry)

    assert result.approved is False
    assert result.reason == "PRESCRIPTION_REJECTED"


def test_health_prescription_expires_after_latest_approval(client, db, store):
    customer = store["customer"]
    p = make_prescription(db, customer, store["city"])
    product = make_product(db, "Metformin", requires_prescription=True)
    add_approval(db, p, product, 60, local_today() - timedelta(days=1))

    resp = client.get(f"/api/Prescription/user/{customer.id}/health/{p.id}", headers=auth_headers(customer))
    eligible = client.get(f"/api/PrescriptionPlan/user/{customer.id}/eligible", headers=auth_headers(customer))

    assert resp.json()["status_id"] == PrescriptionStatusId.EXPIRED
    assert eligible.json() == []


def test_expiry_sweep_keeps_prescription_with_a_valid_later_approval(db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["city"])
    first = make_product(db, "Metformin", requires_prescription=True)
    second = make_product(db, "Gliclazide", requires_prescription=True)
    add_approval(db, p, first, 60, local_today() - timedelta(days=3))
    add_approval(db, p, second, 30, future_expiry, when=datetime(2026, 1, 2, 9, 0))

    assert expire_health_prescriptions(db) == 0
    db.refresh(p)
    assert p.status_id == PrescriptionStatusId.APPROVED


def test_checkout_validation_uses_latest_approval_quantity(db, store, future_expiry):
    customer = store["customer"]
    p = make_prescription(db, customer, store["city"])
    product = make_product(db, "Amlodipine", requires_prescription=True)
    add_approval(db, p, product, 10, future_expiry, when=datetime(2026, 1, 1, 9, 0))
    add_approval(db, p, product, 20, future_expiry, when=datetime(2026, 2, 1, 9, 0))

    exact = validate_checkout_prescription(db, customer.id, p.id, [(product.id, product.name, 20)])
    partial = validate_checkout_prescription(db, customer.id, p.id, [(product.id, product.name, 10)])
    over = validate_checkout_prescription(db, customer.id, p.id, [(product.id, product.name, 21)])

    assert exact.is_valid is True
    assert exact.reason == "OK"
    assert partial.is_valid is False
    assert partial.items[0].reason == "QUANTITY_MISMATCH"
    assert partial.items[0].approved_quantity == 20
    assert over.is_valid is False
    assert over.items[0].reason == "QUANTITY_MISMATCH"


def test_checkout_validation_without_prescribed_lines_is_valid(client, db, store, future_expiry):
    customer = store["customer"]
    p = make_prescription(db, customer, store["city"])
    add_approval(db, p, make_product(db, "Amlodipine", requires_prescription=True), 10, future_expiry)
    put_in_cart(db, customer, make_product(db, "Vitamin C"), 1)

    direct = validate_checkout_prescription(db, customer.id, p.id, [])
    resp = client.post("/api/Prescription/checkout/validate",
                       json={"userId": customer.id, "prescriptionId": p.id}, headers=auth_headers(customer))

    assert (direct.is_valid, direct.reason) == (True, "NO_PRESCRIPTION_ITEMS")
    assert resp.status_code == 200
    assert resp.json() == {"is_valid": True, "reason": "NO_PRESCRIPTION_ITEMS", "items": []}


def test_checkout_validation_declared_health_profile_needs_health_prescription(db, store, future_expiry):
    customer = store["customer"]
    product = make_product(db, "Amlodipine", requires_prescription=True)
    checkout_upload = make_prescription(db, customer, store["city"], is_health=False, name="Checkout upload")
    health = make_prescription(db, customer, store["city"])
    add_approval(db, checkout_upload, product, 10, future_expiry)
    add_approval(db, health, product, 10, future_expiry)
    lines = [(product.id, product.name, 10)]

    declared = validate_checkout_prescription(db, customer.id, checkout_upload.id, lines, is_health_profile=True)
    undeclared = validate_checkout_prescription(db, customer.id, checkout_upload.id, lines)
    profile = validate_checkout_prescription(db, customer.id, health.id, lines, is_health_profile=True)

    assert (declared.is_valid, declared.reason) == (False, "NOT_HEALTH_PRESCRIPTION")
    assert undeclared.is_valid is True
    assert profile.is_valid is True


def test_checkout_validation_rejects_foreign_or_unapproved(db, store, future_expiry):
    customer = store["customer"]
    other = make_user(db, "other@test.com")
    product = make_product(db, "Amlodipine", requires_prescription=True)
    pending = make_prescription(db, customer, store["city"])
    foreign = make_prescription(db, other, store["city"])
    add_approval(db, foreign, product, 10, future_expiry)

    assert validate_checkout_prescription(db, customer.id, pending.id, [(product.id, None, 1)]).reason == "NOT_APPROVED"
    assert validate_checkout_prescription(db, customer.id, foreign.id, [(product.id, None, 1)]).reason == "NOT_OWNER"
    assert validate_checkout_prescription(db, customer.id, 9999, [(product.id, None, 1)]).reason == "PRESCRIPTION_NOT_FOUND"


def test_checkout_with_approved_prescription(client, db, store, future_expiry):
    from conftest import add_batch
    from quickpharma.models.order import ProductOrder

    customer = store["customer"]
    product = make_product(db, "Amlodipine", requires_prescription=True)
    add_batch(db, product, store["branch"], 10, None)
    p = make_prescription(db, customer, store["city"])
    add_approval(db, p, product, 5, future_expiry)
    put_in_cart(db, customer, product, 5)
    headers = auth_headers(customer)

    validation = client.post("/api/Prescription/checkout/validate",
                             json={"userId": customer.id, "prescriptionId": p.id}, headers=headers)
    order = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id,
              "approvedPrescriptionId": p.id},
        headers=headers,
    )

    assert validation.json()["is_valid"] is True
    assert order.status_code == 200
    line = db.query(ProductOrder).filter(ProductOrder.order_id == order.json()["order_id"]).one()
    assert line.prescription_id == p.id


def test_staff_document_download(client, db, store):
    p = make_prescription(db, store["customer"], store["city"])

    resp = client.get(f"/api/Prescription/{p.id}/documents/prescription", headers=auth_headers(store["pharmacist"]))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/pdf")
    assert resp.content == PDF[1]


def test_checkout_with_declared_health_profile_rejects_checkout_upload(client, db, store, future_expiry):
    from conftest import add_batch

    customer = store["customer"]
    product = make_product(db, "Amlodipine", requires_prescription=True)
    add_batch(db, product, store["branch"], 10, None)
    p = make_prescription(db, customer, store["city"], is_health=False, name="Checkout upload")
    add_approval(db, p, product, 2, future_expiry)
    put_in_cart(db, customer, product, 2)

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id,
              "approvedPrescriptionId": p.id, "isHealthProfile": "true"},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["prescription_valid"] is False
    assert detail["prescription_reason"] == "NOT_HEALTH_PRESCRIPTION"
    assert detail["message"] == "Prescription does not match prescribed products."
