"""Supplier orders, reorder rules and automatic reordering."""
from datetime import datetime

from conftest import add_batch, auth_headers, make_product, make_user, put_in_cart
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, RoleName, SupplierOrderStatusId
from quickpharma.models.supplier_order import Reorder, SupplierOrder
from quickpharma.services.supplier_order_service import check_reorder_thresholds


def test_manager_places_order_for_own_branch(client, db, store):
    product = make_product(db, "Panadol")

    resp = client.post(
        "/api/SupplierOrder",
        json={"productId": product.id, "supplierId": store["supplier"].id, "quantity": 50,
              "branchId": store["other_branch"].id},
        headers=auth_headers(store["manager"]),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["branch_id"] == store["branch"].id
    assert body["status_id"] == SupplierOrderStatusId.PENDING
    assert body["employee_id"] == store["manager"].id
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.ADD_RECORD).count() == 1


def test_employee_without_branch_cannot_order(client, db, store):
    drifter = make_user(db, "drifter@test.com", RoleName.MANAGER)
    product = make_product(db, "Panadol")

    resp = client.post(
        "/api/SupplierOrder",
        json={"productId": product.id, "supplierId": store["supplier"].id, "quantity": 50},
        headers=auth_headers(drifter),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Employee branch not found."
    assert db.query(SupplierOrder).count() == 0


def test_admin_targets_any_branch(client, db, store):
    product = make_product(db, "Panadol")

    resp = client.post(
        "/api/SupplierOrder",
        json={"productId": product.id, "supplierId": store["supplier"].id, "quantity": 5,
              "branchId": store["other_branch"].id},
        headers=auth_headers(store["admin"]),
    )

    assert resp.status_code == 201
    assert resp.json()["branch_id"] == store["other_branch"].id


def test_invalid_quantity_and_unknown_supplier(client, db, store):
    product = make_product(db, "Panadol")
    headers = auth_headers(store["manager"])

    zero = client.post("/api/SupplierOrder",
                       json={"productId": product.id, "supplierId": store["supplier"].id, "quantity": 0},
                       headers=headers)
    unknown = client.post("/api/SupplierOrder",
                          json={"productId": product.id, "supplierId": 999, "quantity": 3},
                          headers=headers)

    assert zero.status_code == 400
    assert zero.json()["detail"] == "Quantity must be greater than zero."
    assert unknown.status_code == 404


def test_orders_are_listed_per_branch(client, db, store):
    product = make_product(db, "Panadol")
    supplier_id = store["supplier"].id
    for branch in (store["branch"], store["other_branch"]):
        db.add(SupplierOrder(supplier_id=supplier_id, product_id=product.id, branch_id=branch.id,
                             quantity=10, status_id=SupplierOrderStatusId.PENDING,
                             order_date=datetime(2026, 3, 1, 10, 0)))
    db.commit()
    foreign = db.query(SupplierOrder).filter(SupplierOrder.branch_id == store["other_branch"].id).one()

    mine = client.get("/api/SupplierOrder", headers=auth_headers(store["manager"])).json()
    everything = client.get("/api/SupplierOrder", headers=auth_headers(store["admin"])).json()
    denied = client.get(f"/api/SupplierOrder/{foreign.id}", headers=auth_headers(store["manager"]))

    assert mine["total_count"] == 1
    assert mine["items"][0]["branch_id"] == store["branch"].id
    assert everything["total_count"] == 2
    assert denied.status_code == 403


def test_unsafe_search_returns_nothing(client, db, store):
    resp = client.get("/api/SupplierOrder", params={"search": "'; drop table--"},
                      headers=auth_headers(store["manager"]))

    assert resp.json()["items"] == []


def test_drivers_cannot_order(client, store):
    resp = client.get("/api/SupplierOrder", headers=auth_headers(store["driver"]))

    assert resp.status_code == 403


def test_reorder_rule_is_unique_per_product_and_branch(client, db, store):
    product = make_product(db, "Panadol")
    body = {"productId": product.id, "supplierId": store["supplier"].id, "threshold": 5, "quantity": 40}
    headers = auth_headers(store["manager"])

    first = client.post("/api/Reorder", json=body, headers=headers)
    second = client.post("/api/Reorder", json=body, headers=headers)

    assert first.status_code == 201
    assert first.json()["branch_id"] == store["branch"].id
    assert second.status_code == 409
    assert db.query(Reorder).count() == 1


def test_negative_threshold_is_rejected(client, db, store):
    product = make_product(db, "Panadol")

    resp = client.post(
        "/api/Reorder",
        json={"productId": product.id, "supplierId": store["supplier"].id, "threshold": -1, "quantity": 40},
        headers=auth_headers(store["manager"]),
    )

    assert resp.status_code == 400


def test_threshold_check_places_one_pending_order(db, store):
    product = make_product(db, "Ventolin")
    add_batch(db, product, store["branch"], 3, None)
    db.add(Reorder(product_id=product.id, supplier_id=store["supplier"].id, branch_id=store["branch"].id,
                   user_id=store["manager"].id, threshold=5, quantity=40))
    db.commit()

    placed = check_reorder_thresholds(db, store["branch"].id)
    again = check_reorder_thresholds(db, store["branch"].id)

    assert len(placed) == 1
    assert placed[0].quantity == 40
    assert placed[0].employee_id is None
    assert again == []
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.AUTOMATED_REORDER).count() == 1


def test_threshold_check_ignores_stocked_products(db, store):
    product = make_product(db, "Ventolin")
    add_batch(db, product, store["branch"], 30, None)
    db.add(Reorder(product_id=product.id, supplier_id=store["supplier"].id, branch_id=store["branch"].id,
                   threshold=5, quantity=40))
    db.commit()

    assert check_reorder_thresholds(db) == []


def test_checkout_triggers_automatic_reorder(client, db, store):
    customer = store["customer"]
    product = make_product(db, "Ventolin")
    add_batch(db, product, store["branch"], 6, None)
    db.add(Reorder(product_id=product.id, supplier_id=store["supplier"].id, branch_id=store["branch"].id,
                   threshold=5, quantity=40))
    db.commit()
    put_in_cart(db, customer, product, 2)

    resp = client.post(
        "/api/CheckoutOrder/create",
        data={"userId": customer.id, "mode": "pickup", "pickupBranchId": store["branch"].id},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 200
    order = db.query(SupplierOrder).one()
    assert order.branch_id == store["branch"].id
    assert order.status_id == SupplierOrderStatusId.PENDING
