"""Reports, activity log, order history, deliveries and dashboards."""
from datetime import date, datetime, timedelta

from conftest import add_batch, auth_headers, make_product, make_user, put_in_cart
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, OrderStatusId, RoleName
from quickpharma.models.order import Order
from quickpharma.models.report import Report
from quickpharma.services.checkout_service import CheckoutRequest, create_order

NOW = datetime(2026, 3, 10, 8, 15)


def place_delivery_order(db, store, gateway, slot_id=1, product_name="Panadol", quantity=2):
    customer = store["customer"]
    product = make_product(db, product_name, price="2.000", category=store["category"], supplier=store["supplier"])
    add_batch(db, product, store["branch"], 20, None)
    put_in_cart(db, customer, product, quantity)
    result = create_order(db, CheckoutRequest(
        user_id=customer.id, mode="delivery", city_id=store["city"].id,
        block="10", road="20", building_floor="3",
        shipping_date=NOW.date() + timedelta(days=1), slot_id=slot_id,
    ), gateway, now=NOW)
    assert result.created, result.message
    return db.get(Order, result.order_id)


def test_generate_total_revenue_report(client, db, store, gateway):
    place_delivery_order(db, store, gateway)
    headers = auth_headers(store["admin"])

    resp = client.post("/api/Reports/Generate", json={
        "reportType": "Total Revenue Report", "dateFrom": "2026-03-01", "dateTo": "2026-03-31", "branch": "ALL",
    }, headers=headers)

    assert resp.status_code == 201
    body = resp.json()
    report = db.get(Report, body["report_id"])
    assert body["report_name"] == f"Total Revenue Report #{report.id}"
    assert report.document.startswith(b"%PDF")
    assert report.document_size_bytes == len(report.document)
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.ADD_RECORD, Log.description.like("%Report%")).count() == 1


def test_report_download_and_delete(client, db, store):
    headers = auth_headers(store["admin"])
    created = client.post("/api/Reports/Generate", json={
        "reportType": "5", "dateFrom": "2026-03-01", "dateTo": "2026-03-31",
    }, headers=headers).json()
    report_id = created["report_id"]

    download = client.get(f"/api/Reports/{report_id}/download", headers=headers)
    listing = client.get("/api/Reports", headers=headers).json()
    deleted = client.delete(f"/api/Reports/{report_id}", headers=headers)

    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.headers["content-disposition"].startswith("attachment;")
    assert listing["total_count"] == 1
    assert deleted.status_code == 200
    assert client.get(f"/api/Reports/{report_id}", headers=headers).status_code == 404


def test_report_request_validation(client, store):
    headers = auth_headers(store["admin"])

    def generate(**body):
        resp = client.post("/api/Reports/Generate", json=body, headers=headers)
        return resp.status_code, resp.json()["detail"]["reason"]

    assert generate(dateFrom="2026-03-01", dateTo="2026-03-31") == (400, "REPORT_TYPE_REQUIRED")
    assert generate(reportType="1", dateFrom="2026-03-31", dateTo="2026-03-01") == (400, "DATE_RANGE_INVALID")
    assert generate(reportType="1", dateFrom="yesterday", dateTo="2026-03-01") == (400, "INVALID_DATE_FROM")
    assert generate(reportType="Weather", dateFrom="2026-03-01", dateTo="2026-03-31") == (400, "INVALID_REPORT_TYPE")
    assert generate(reportType="Category Revenue", dateFrom="2026-03-01", dateTo="2026-03-31") == (
        400, "CATEGORY_REQUIRED",
    )
    assert generate(reportType="1", dateFrom="2026-03-01", dateTo="2026-03-31", branch="999") == (
        400, "INVALID_BRANCH",
    )


def test_reports_are_admin_only(client, store):
    assert client.get("/api/Reports", headers=auth_headers(store["manager"])).status_code == 403


def test_activity_log_filters(client, db, store, gateway):
    place_delivery_order(db, store, gateway)
    client.post("/api/Auth/login", json={"email": "customer@test.com", "password": "bad"})
    headers = auth_headers(store["admin"])

    everything = client.get("/api/QuickPharmaLog", headers=headers).json()
    by_type = client.get("/api/QuickPharmaLog", params={"logTypeId": LogTypeId.ADD_RECORD}, headers=headers).json()
    unsafe = client.get("/api/QuickPharmaLog", params={"search": "1 or 1=1"}, headers=headers).json()
    types = client.get("/api/QuickPharmaLog/types").json()

    assert everything["total_count"] == db.query(Log).count()
    assert all(item["log_type_id"] == LogTypeId.ADD_RECORD for item in by_type["items"])
    assert unsafe["items"] == []
    assert {"id": LogTypeId.LOGIN_FAILURE, "name": "Login Failure"} in types


def test_customer_order_history(client, db, store, gateway):
    order = place_delivery_order(db, store, gateway)
    headers = auth_headers(store["customer"])

    listing = client.get("/api/MyOrders", headers=headers).json()
    details = client.get(f"/api/MyOrders/{order.id}", headers=headers).json()
    stranger = make_user(db, "stranger@test.com")
    hidden = client.get(f"/api/MyOrders/{order.id}", headers=auth_headers(stranger))

    assert listing["total_count"] == 1
    assert details["shipping"]["method"] == "delivery"
    assert details["shipping"]["slot_name"] == "Morning"
    assert details["lines"][0]["quantity"] == 2
    assert hidden.status_code == 404


def test_driver_sees_own_slot_and_urgent_deliveries(client, db, store, gateway):
    mine = place_delivery_order(db, store, gateway, slot_id=1, product_name="Panadol")
    place_delivery_order(db, store, gateway, slot_id=3, product_name="Brufen")

    resp = client.get("/api/DeliveryRequests", headers=auth_headers(store["driver"]))

    assert resp.status_code == 200
    assert [item["order_id"] for item in resp.json()["items"]] == [mine.id]


def test_driver_completes_cash_delivery(client, db, store, gateway):
    order = place_delivery_order(db, store, gateway)
    headers = auth_headers(store["driver"])

    out = client.put(f"/api/DeliveryRequests/{order.id}/status",
                     json={"newStatusId": OrderStatusId.OUT_FOR_DELIVERY}, headers=headers)
    done = client.put(f"/api/DeliveryRequests/{order.id}/status",
                      json={"newStatusId": OrderStatusId.COMPLETED, "markCashPaymentSuccessful": True},
                      headers=headers)

    assert out.json() == {"updated": True}
    assert done.json() == {"updated": True}
    db.refresh(order)
    assert order.order_status_id == OrderStatusId.COMPLETED
    assert order.payment.is_successful is True


def test_driver_cannot_touch_other_slot(client, db, store, gateway):
    order = place_delivery_order(db, store, gateway, slot_id=3)

    resp = client.put(f"/api/DeliveryRequests/{order.id}/status",
                      json={"newStatusId": OrderStatusId.COMPLETED}, headers=auth_headers(store["driver"]))

    assert resp.status_code == 400
    db.refresh(order)
    assert order.order_status_id == OrderStatusId.PENDING


def test_admin_dashboard(client, db, store, gateway):
    place_delivery_order(db, store, gateway)

    body = client.get("/api/AdminDashboard", headers=auth_headers(store["admin"])).json()

    assert body["total_orders"] == 1
    assert body["total_suppliers"] == 1
    assert body["sales_per_category"] == [{"name": "Pain Relief", "total_sales": 4.0}]
    branch_sales = {row["branch_id"]: row["total_sales"] for row in body["sales_per_branch"]}
    assert branch_sales[store["branch"].id] == 5.0


def test_manager_dashboard_is_branch_scoped(client, db, store, gateway):
    place_delivery_order(db, store, gateway)
    headers = auth_headers(store["manager"])

    own = client.get("/api/ManagerDashboard", params={"branchId": store["other_branch"].id}, headers=headers).json()
    admin_without_branch = client.get("/api/ManagerDashboard", headers=auth_headers(store["admin"]))

    assert own["branch_id"] == store["branch"].id
    assert own["total_deliveries"] == 1
    assert own["orders_by_status"] == {str(OrderStatusId.PENDING): 1}
    assert admin_without_branch.status_code == 400


def test_pharmacist_and_driver_dashboards(client, db, store, gateway):
    place_delivery_order(db, store, gateway)
    orphan_driver = make_user(db, "orphan.driver@test.com", RoleName.DRIVER)

    pharmacist = client.get("/api/PharmacistDashboard", headers=auth_headers(store["pharmacist"])).json()
    driver = client.get("/api/DriverDashboard", headers=auth_headers(store["driver"])).json()
    orphan = client.get("/api/DriverDashboard", headers=auth_headers(orphan_driver)).json()

    assert pharmacist["branch_total_orders"] == 1
    assert driver["slot_name"] == "Morning"
    assert driver["metrics"]["my_slot_open_deliveries"] == 1
    assert orphan == {"slot_name": None, "metrics": None}


def test_lookups_are_public(client, store):
    cities = client.get("/api/Cities").json()
    methods = client.get("/api/OrderPaymentMethods").json()

    assert {c["city_name"] for c in cities} == {"Manama", "Riffa"}
    assert [m["name"] for m in methods] == ["Cash", "Online"]
