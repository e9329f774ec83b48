"""Customer catalog browsing and staff catalog maintenance."""
from datetime import date, timedelta

from sqlalchemy import create_engine, event

from conftest import add_batch, auth_headers, make_product, put_in_cart
from quickpharma.db.session import enable_sqlite_foreign_keys
from quickpharma.models.cart import CartItem, WishlistItem
from quickpharma.models.catalog import Ingredient, Product, ProductIngredient
from quickpharma.models.health import Allergy, AllergyIngredientInteraction, HealthProfile, HealthProfileAllergy
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId
from quickpharma.models.supplier_order import Reorder

PNG = b"\x89PNG\r\n\x1a\nproduct-image"


def product_form(store, name="Brufen 400mg", **overrides):
    form = {
        "productName": name,
        "productDescription": "Ibuprofen tablets",
        "productPrice": "1.750",
        "supplierId": store["supplier"].id,
        "categoryId": store["category"].id,
        "requiresPrescription": "false",
        "isControlled": "false",
    }
    form.update(overrides)
    return form


def supplier_body(store, **overrides):
    body = {
        "supplierName": "Bahrain Medical Supply",
        "representative": "Omar Khalid",
        "contact": "+973 1711 2233",
        "email": "sales@bms.example.com",
        "cityId": store["city"].id,
        "block": "316",
        "road": "Road 1705",
        "buildingFloor": "12",
    }
    body.update(overrides)
    return body


def test_catalog_is_public_and_sorted_by_price(client, db, store):
    make_product(db, "Vitamin C", price="4.000")
    make_product(db, "Zinc", price="1.000")

    resp = client.get("/api/ExternalProducts")

    assert resp.status_code == 200
    body = resp.json()
    assert body["total_count"] == 2
    assert [i["product_name"] for i in body["items"]] == ["Zinc", "Vitamin C"]
    assert body["items"][0]["stock_status"] == "OUT_OF_STOCK"
    assert body["items"][0]["is_in_wishlist"] is False


def test_catalog_branch_filter_only_counts_available_stock(client, db, store):
    fresh = make_product(db, "Vitamin D")
    stale = make_product(db, "Cough Syrup")
    add_batch(db, fresh, store["branch"], 8, date.today() + timedelta(days=60))
    add_batch(db, stale, store["branch"], 8, date.today() - timedelta(days=1))
    add_batch(db, stale, store["other_branch"], 2, None)

    resp = client.get("/api/ExternalProducts", params={"branchIds": [store["branch"].id]})

    items = resp.json()["items"]
    assert [i["product_name"] for i in items] == ["Vitamin D"]
    assert items[0]["available_quantity"] == 8


def test_catalog_search_rejects_unsafe_terms(client, db, store):
    make_product(db, "Vitamin C")

    assert client.get("/api/ExternalProducts", params={"search": "vit"}).json()["total_count"] == 1
    assert client.get("/api/ExternalProducts", params={"search": "<script>"}).json()["total_count"] == 0


def test_signed_in_customer_sees_conflicts(client, db, store):
    penicillin = Ingredient(name="Penicillin")
    allergy = Allergy(name="Penicillin allergy")
    db.add_all([penicillin, allergy])
    db.commit()
    db.add(AllergyIngredientInteraction(allergy_id=allergy.id, ingredient_id=penicillin.id))
    amoxil = make_product(db, "Amoxil", requires_prescription=True)
    db.add(ProductIngredient(product_id=amoxil.id, ingredient_id=penicillin.id))
    profile = HealthProfile(user_id=store["customer"].id)
    db.add(profile)
    db.flush()
    db.add(HealthProfileAllergy(health_profile_id=profile.id, allergy_id=allergy.id))
    db.commit()

    resp = client.get(f"/api/ExternalProducts/{amoxil.id}", headers=auth_headers(store["customer"]))

    assert resp.status_code == 200
    body = resp.json()
    assert body["ingredients"] == ["Penicillin"]
    assert body["incompatibilities"]["allergies"] == ["Penicillin allergy"]


def test_availability_per_branch(client, db, store):
    product = make_product(db, "Vitamin C")
    add_batch(db, product, store["branch"], 3, None)

    body = client.get(f"/api/ExternalProducts/{product.id}/availability").json()

    assert body["total_available"] == 3
    assert {b["branch_id"]: b["available_quantity"] for b in body["branches"]}[store["branch"].id] == 3


def test_admin_creates_product_with_image(client, db, store):
    resp = client.post(
        "/api/Products",
        data=product_form(store),
        files={"image": ("brufen.png", PNG, "image/png")},
        headers=auth_headers(store["admin"]),
    )

    assert resp.status_code == 201
    product_id = resp.json()["product_id"]
    assert resp.json()["has_image"] is True
    image = client.get(f"/api/ExternalProducts/{product_id}/image")
    assert image.headers["content-type"] == "image/png"
    assert image.content == PNG
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.ADD_RECORD).count() == 1


def test_product_validation(client, db, store):
    make_product(db, "Brufen 400mg")
    headers = auth_headers(store["admin"])

    duplicate = client.post("/api/Products", data=product_form(store, name="brufen 400MG"), headers=headers)
    bad_name = client.post("/api/Products", data=product_form(store, name="Brufen <b>"), headers=headers)
    free = client.post("/api/Products", data=product_form(store, name="Brufen Kids", productPrice="0"),
                       headers=headers)

    assert duplicate.status_code == 409
    assert bad_name.status_code == 400
    assert free.status_code == 400
    assert free.json()["detail"] == "Product price must be greater than 0."


def test_only_admin_writes_products(client, store):
    resp = client.post("/api/Products", data=product_form(store), headers=auth_headers(store["manager"]))

    assert resp.status_code == 403


def test_check_name_is_case_insensitive(client, db, store):
    product = make_product(db, "Brufen 400mg")
    headers = auth_headers(store["pharmacist"])

    taken = client.get("/api/Products/check-name", params={"name": "BRUFEN 400mg"}, headers=headers)
    own = client.get("/api/Products/check-name", params={"name": "Brufen 400mg", "excludeId": product.id},
                     headers=headers)

    assert taken.json() == {"exists": True}
    assert own.json() == {"exists": False}


def test_product_with_inventory_cannot_be_deleted(client, db, store):
    stocked = make_product(db, "Vitamin C")
    unused = make_product(db, "Vitamin E")
    add_batch(db, stocked, store["branch"], 1, None)
    headers = auth_headers(store["admin"])

    refused = client.delete(f"/api/Products/{stocked.id}", headers=headers)
    deleted = client.delete(f"/api/Products/{unused.id}", headers=headers)

    assert refused.status_code == 409
    assert deleted.status_code == 200
    assert db.query(Product).filter(Product.id == unused.id).first() is None
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.DELETE_RECORD).count() == 1


def test_category_in_use_cannot_be_deleted(client, db, store):
    make_product(db, "Panadol", category=store["category"])
    headers = auth_headers(store["admin"])

    refused = client.delete(f"/api/Category/{store['category'].id}", headers=headers)
    created = client.post("/api/Category", data={"categoryName": "Skin Care"}, headers=headers)
    removed = client.delete(f"/api/Category/{created.json()['category_id']}", headers=headers)

    assert refused.status_code == 409
    assert created.status_code == 201
    assert removed.status_code == 200


def test_category_listing_counts_products(client, db, store):
    make_product(db, "Panadol", category=store["category"])
    make_product(db, "Brufen", category=store["category"])

    body = client.get("/api/Category").json()

    assert body["items"] == [{
        "category_id": store["category"].id, "category_name": "Pain Relief", "has_image": False, "product_count": 2,
    }]


def test_product_types_per_category(client, db, store):
    headers = auth_headers(store["admin"])
    category_id = store["category"].id

    added = client.post(f"/api/Category/{category_id}/types", json={"productTypeName": "Syrups"}, headers=headers)
    listed = client.get(f"/api/Category/{category_id}/types").json()

    assert added.status_code == 201
    assert sorted(t["product_type_name"] for t in listed["items"]) == ["Syrups", "Tablets"]


def test_admin_creates_supplier_with_address(client, db, store):
    resp = client.post("/api/Suppliers", json=supplier_body(store), headers=auth_headers(store["admin"]))

    assert resp.status_code == 201
    body = resp.json()
    assert body["supplier_name"] == "Bahrain Medical Supply"
    assert body["address"]["city_id"] == store["city"].id
    assert body["address"]["block"] == "316"


def test_supplier_validation(client, store):
    headers = auth_headers(store["admin"])

    bad_email = client.post("/api/Suppliers", json=supplier_body(store, email="not-an-email"), headers=headers)
    bad_block = client.post("/api/Suppliers", json=supplier_body(store, block="12A"), headers=headers)
    bad_name = client.post("/api/Suppliers", json=supplier_body(store, supplierName="Acme #1"), headers=headers)

    assert bad_email.status_code == 400
    assert bad_email.json()["detail"] == "Email must be valid (e.g., user@example.com)."
    assert bad_block.json()["detail"] == "Block must contain numbers only."
    assert bad_name.status_code == 400


def test_supplier_update_replaces_details(client, db, store):
    headers = auth_headers(store["admin"])
    supplier_id = store["supplier"].id

    resp = client.put(f"/api/Suppliers/{supplier_id}",
                      json=supplier_body(store, supplierName="Gulf Pharma Group", email="hq@gulf.example.com"),
                      headers=headers)

    assert resp.status_code == 200
    assert resp.json()["supplier_name"] == "Gulf Pharma Group"
    assert resp.json()["address"]["road"] == "Road 1705"


def test_customers_cannot_list_suppliers(client, store):
    assert client.get("/api/Suppliers", headers=auth_headers(store["customer"])).status_code == 403


def test_supplier_in_use_cannot_be_deleted(client, db, store):
    make_product(db, "Panadol", supplier=store["supplier"])
    headers = auth_headers(store["admin"])

    refused = client.delete(f"/api/Suppliers/{store['supplier'].id}", headers=headers)
    created = client.post("/api/Suppliers", json=supplier_body(store), headers=headers).json()
    removed = client.delete(f"/api/Suppliers/{created['supplier_id']}", headers=headers)

    assert refused.status_code == 409
    assert removed.status_code == 200
    assert client.get(f"/api/Suppliers/{created['supplier_id']}", headers=headers).status_code == 404


def test_deleting_product_clears_carts_and_wishlists(client, db, store):
    customer = store["customer"]
    product = make_product(db, "Vitamin E")
    batch = add_batch(db, product, store["branch"], 4, None)
    put_in_cart(db, customer, product, 1)
    db.add(WishlistItem(user_id=customer.id, product_id=product.id))
    db.delete(batch)
    db.commit()

    deleted = client.delete(f"/api/Products/{product.id}", headers=auth_headers(store["admin"]))
    cart = client.get("/api/Cart", headers=auth_headers(customer))

    assert deleted.status_code == 200
    assert db.query(CartItem).count() == 0
    assert db.query(WishlistItem).count() == 0
    assert cart.status_code == 200
    assert cart.json()["items"] == []


def test_product_with_reorder_rule_cannot_be_deleted(client, db, store):
    product = make_product(db, "Ventolin")
    db.add(Reorder(product_id=product.id, supplier_id=store["supplier"].id, branch_id=store["branch"].id,
                   threshold=5, quantity=40))
    db.commit()

    resp = client.delete(f"/api/Products/{product.id}", headers=auth_headers(store["admin"]))

    assert resp.status_code == 409
    assert resp.json()["detail"] == "Product cannot be deleted while reorder rules reference it."
    assert db.query(Product).filter(Product.id == product.id).first() is not None


def test_sqlite_connections_enforce_foreign_keys():
    engine = create_engine("sqlite://")
    event.listen(engine, "connect", enable_sqlite_foreign_keys)

    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
