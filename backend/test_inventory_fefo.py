"""Available stock and first-expiry-first-out consumption."""
from datetime import date, timedelta

import pytest

from conftest import add_batch, auth_headers, make_product
from quickpharma.models.inventory import Inventory
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId
from quickpharma.services.inventory_service import (
    StockChangedError, available_stock, available_stock_map, consume_fefo,
)

TODAY = date(2026, 3, 10)


def test_available_ignores_expired_and_empty_batches(db, store):
    product = make_product(db, "Panadol 500mg")
    branch = store["branch"]
    add_batch(db, product, branch, 4, TODAY + timedelta(days=10))
    add_batch(db, product, branch, 3, None)
    add_batch(db, product, branch, 50, TODAY - timedelta(days=1))
    add_batch(db, product, branch, 0, TODAY + timedelta(days=30))

    assert available_stock(db, branch.id, product.id, TODAY) == 7


def test_batch_expiring_today_still_counts(db, store):
    product = make_product(db, "Brufen 400mg")
    add_batch(db, product, store["branch"], 2, TODAY)

    assert available_stock(db, store["branch"].id, product.id, TODAY) == 2


def test_available_map_per_branch_and_across_branches(db, store):
    product = make_product(db, "Vitamin C")
    add_batch(db, product, store["branch"], 5, None)
    add_batch(db, product, store["other_branch"], 6, None)

    assert available_stock_map(db, store["branch"].id, [product.id], TODAY) == {product.id: 5}
    assert available_stock_map(db, None, [product.id], TODAY) == {product.id: 11}
    assert available_stock_map(db, None, [], TODAY) == {}


def test_consume_takes_earliest_expiry_first_and_undated_last(db, store):
    product = make_product(db, "Amoxicillin")
    branch = store["branch"]
    undated = add_batch(db, product, branch, 10, None)
    late = add_batch(db, product, branch, 5, TODAY + timedelta(days=60))
    early = add_batch(db, product, branch, 3, TODAY + timedelta(days=5))

    taken = consume_fefo(db, branch.id, product.id, 9, TODAY)
    db.commit()

    assert taken == [(early.id, 3), (late.id, 5), (undated.id, 1)]
    assert db.get(Inventory, early.id).quantity == 0
    assert db.get(Inventory, late.id).quantity == 0
    assert db.get(Inventory, undated.id).quantity == 9


def test_consume_skips_expired_batches(db, store):
    product = make_product(db, "Cetirizine")
    branch = store["branch"]
    expired = add_batch(db, product, branch, 8, TODAY - timedelta(days=2))
    fresh = add_batch(db, product, branch, 4, TODAY + timedelta(days=2))

    assert consume_fefo(db, branch.id, product.id, 4, TODAY) == [(fresh.id, 4)]
    assert db.get(Inventory, expired.id).quantity == 8


def test_over_consumption_fails_without_touching_batches(db, store):
    product = make_product(db, "Omeprazole")
    branch = store["branch"]
    first = add_batch(db, product, branch, 2, TODAY + timedelta(days=3))
    second = add_batch(db, product, branch, 1, None)

    with pytest.raises(StockChangedError) as exc:
        consume_fefo(db, branch.id, product.id, 5, TODAY)

    assert exc.value.requested == 5
    assert exc.value.available == 3
    db.rollback()
    assert db.get(Inventory, first.id).quantity == 2
    assert db.get(Inventory, second.id).quantity == 1


def test_zero_quantity_consumes_nothing(db, store):
    product = make_product(db, "Loratadine")
    add_batch(db, product, store["branch"], 2, None)

    assert consume_fefo(db, store["branch"].id, product.id, 0, TODAY) == []


def test_manager_only_sees_own_branch_inventory(client, db, store):
    product = make_product(db, "Aspirin")
    add_batch(db, product, store["branch"], 5, None)
    add_batch(db, product, store["other_branch"], 7, None)

    resp = client.get("/api/Inventory", headers=auth_headers(store["manager"]))

    assert resp.status_code == 200
    body = resp.json()
    assert body["total_count"] == 1
    assert body["items"][0]["branch_id"] == store["branch"].id


def test_manager_cannot_read_other_branch_batch(client, db, store):
    product = make_product(db, "Aspirin")
    foreign = add_batch(db, product, store["other_branch"], 7, None)

    resp = client.get(f"/api/Inventory/{foreign.id}", headers=auth_headers(store["manager"]))

    assert resp.status_code == 403


def test_admin_creates_batch_and_logs_inventory_change(client, db, store, future_expiry):
    product = make_product(db, "Paracetamol Syrup")

    resp = client.post(
        "/api/Inventory",
        json={
            "productId": product.id,
            "branchId": store["branch"].id,
            "quantity": 12,
            "expiryDate": future_expiry.isoformat(),
        },
        headers=auth_headers(store["admin"]),
    )

    assert resp.status_code == 201
    assert resp.json()["quantity"] == 12
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.INVENTORY_CHANGE).count() == 1
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.ADD_RECORD).count() == 1


def test_customer_cannot_manage_inventory(client, store):
    resp = client.get("/api/Inventory", headers=auth_headers(store["customer"]))

    assert resp.status_code == 403


def test_dispose_rejects_batch_that_has_not_expired(client, db, store, future_expiry):
    product = make_product(db, "Ibuprofen Gel")
    batch = add_batch(db, product, store["branch"], 3, future_expiry)

    resp = client.post(f"/api/ExpiredProducts/dispose/{batch.id}", headers=auth_headers(store["manager"]))

    assert resp.status_code == 400
    assert db.get(Inventory, batch.id) is not None
