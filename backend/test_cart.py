"""Cart, wishlist, health profile and medication safety checks."""
from datetime import date, timedelta

from conftest import add_batch, auth_headers, make_product, put_in_cart
from quickpharma.models.catalog import Ingredient, IngredientInteraction, ProductIngredient
from quickpharma.models.health import Allergy, AllergyIngredientInteraction, Illness


def test_add_to_cart_accumulates_up_to_stock(client, db, store):
    product = make_product(db, "Panadol")
    add_batch(db, product, store["branch"], 2, None)
    add_batch(db, product, store["other_branch"], 1, None)
    headers = auth_headers(store["customer"])

    first = client.post("/api/Cart", json={"productId": product.id, "quantity": 2}, headers=headers)
    second = client.post("/api/Cart", json={"productId": product.id, "quantity": 1}, headers=headers)
    third = client.post("/api/Cart", json={"productId": product.id, "quantity": 1}, headers=headers)

    assert first.status_code == 200
    assert second.json()["quantity"] == 3
    assert third.status_code == 409
    assert third.json()["detail"]["reason"] == "EXCEEDS_AVAILABLE_STOCK"
    assert third.json()["detail"]["available"] == 3


def test_expired_stock_cannot_be_added(client, db, store):
    product = make_product(db, "Old Syrup")
    add_batch(db, product, store["branch"], 9, date.today() - timedelta(days=5))

    resp = client.post("/api/Cart", json={"productId": product.id}, headers=auth_headers(store["customer"]))

    assert resp.status_code == 409
    assert resp.json()["detail"]["reason"] == "OUT_OF_STOCK"


def test_unknown_product_is_404(client, store):
    resp = client.post("/api/Cart", json={"productId": 999}, headers=auth_headers(store["customer"]))

    assert resp.status_code == 404


def test_update_to_zero_removes_line(client, db, store):
    product = make_product(db, "Strepsils")
    add_batch(db, product, store["branch"], 5, None)
    put_in_cart(db, store["customer"], product, 2)
    headers = auth_headers(store["customer"])

    resp = client.put(f"/api/Cart/{product.id}", json={"quantity": 0}, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["reason"] == "REMOVED"
    assert client.get("/api/Cart", headers=headers).json()["total_count"] == 0


def test_cart_listing_and_summary(client, db, store):
    cheap = make_product(db, "Plasters", price="0.500")
    dear = make_product(db, "Thermometer", price="6.000")
    add_batch(db, cheap, store["branch"], 100, None)
    add_batch(db, dear, store["branch"], 3, None)
    put_in_cart(db, store["customer"], cheap, 4)
    put_in_cart(db, store["customer"], dear, 1)
    headers = auth_headers(store["customer"])

    cart = client.get("/api/Cart", headers=headers).json()
    summary = client.get("/api/Cart/summary", headers=headers).json()

    assert [i["product_name"] for i in cart["items"]] == ["Plasters", "Thermometer"]
    assert cart["items"][0]["stock_status"] == "IN_STOCK"
    assert cart["items"][1]["stock_status"] == "LOW_STOCK"
    assert summary == {"total_quantity": 5, "total_amount": 8.0}


def test_staff_have_no_cart(client, store):
    assert client.get("/api/Cart", headers=auth_headers(store["pharmacist"])).status_code == 403


def test_cart_requires_login(client):
    assert client.get("/api/Cart").status_code == 401


def test_wishlist_rejects_duplicates(client, db, store):
    product = make_product(db, "Sunscreen")
    headers = auth_headers(store["customer"])

    assert client.post("/api/Wishlist", json={"productId": product.id}, headers=headers).status_code == 200
    duplicate = client.post("/api/Wishlist", json={"productId": product.id}, headers=headers)

    assert duplicate.status_code == 409
    assert client.get("/api/Wishlist/ids", headers=headers).json() == [product.id]
    assert client.delete(f"/api/Wishlist/{product.id}", headers=headers).json() == {"removed": True}
    assert client.delete(f"/api/Wishlist/{product.id}", headers=headers).status_code == 404


def test_cart_medication_check_flags_allergy(client, db, store):
    ibuprofen = Ingredient(name="Ibuprofen")
    allergy = Allergy(name="NSAID allergy")
    db.add_all([ibuprofen, allergy])
    db.commit()
    db.add(AllergyIngredientInteraction(allergy_id=allergy.id, ingredient_id=ibuprofen.id))
    brufen = make_product(db, "Brufen")
    safe = make_product(db, "Saline Spray")
    db.add(ProductIngredient(product_id=brufen.id, ingredient_id=ibuprofen.id))
    db.commit()
    put_in_cart(db, store["customer"], brufen, 1)
    put_in_cart(db, store["customer"], safe, 1)
    headers = auth_headers(store["customer"])

    before = client.get("/api/Cart/check-medication", headers=headers).json()
    added = client.post("/api/HealthProfileAllergy", json={"allergyId": allergy.id, "severityId": 3}, headers=headers)
    after = client.get("/api/Cart/check-medication", headers=headers).json()

    assert before == {"has_conflicts": False, "items": []}
    assert added.status_code == 201
    assert after["has_conflicts"] is True
    assert after["items"] == [{
        "product_id": brufen.id, "product_name": "Brufen", "allergies": ["NSAID allergy"], "illnesses": [],
    }]


def test_health_profile_entries_are_unique_and_owned(client, db, store):
    from conftest import make_user

    asthma = Illness(name="Asthma")
    db.add(asthma)
    db.commit()
    headers = auth_headers(store["customer"])

    created = client.post("/api/HealthProfileIllness", json={"illnessId": asthma.id}, headers=headers)
    duplicate = client.post("/api/HealthProfileIllness", json={"illnessId": asthma.id}, headers=headers)
    entry_id = created.json()["id"]
    stranger = make_user(db, "stranger@test.com")
    foreign_delete = client.delete(f"/api/HealthProfileIllness/{entry_id}", headers=auth_headers(stranger))
    updated = client.put(f"/api/HealthProfileIllness/{entry_id}", json={"severityId": 2}, headers=headers)

    assert duplicate.status_code == 409
    assert foreign_delete.status_code == 404
    assert updated.status_code == 200
    listed = client.get("/api/HealthProfileIllness", headers=headers).json()
    assert listed == [{"id": entry_id, "illness_id": asthma.id, "illness_name": "Asthma",
                       "severity_id": 2, "severity_name": "Moderate"}]


def test_pharmacist_checks_ingredient_interaction(client, db, store):
    warfarin = Ingredient(name="Warfarin")
    aspirin = Ingredient(name="Acetylsalicylic acid")
    db.add_all([warfarin, aspirin])
    db.commit()
    db.add(IngredientInteraction(ingredient_a_id=aspirin.id, ingredient_b_id=warfarin.id,
                                 interaction_type="Major", description="Bleeding risk"))
    coumadin = make_product(db, "Coumadin")
    disprin = make_product(db, "Disprin")
    db.add_all([
        ProductIngredient(product_id=coumadin.id, ingredient_id=warfarin.id),
        ProductIngredient(product_id=disprin.id, ingredient_id=aspirin.id),
    ])
    db.commit()

    resp = client.post(
        "/api/SafetyCheck/check-interaction",
        json={"productAId": coumadin.id, "productBId": disprin.id},
        headers=auth_headers(store["pharmacist"]),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["has_interaction"] is True
    assert body["interactions"][0]["interaction_type"] == "Major"
