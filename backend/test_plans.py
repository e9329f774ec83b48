"""Prescription plans and their scheduled emails."""
from datetime import date, datetime, timedelta

from conftest import add_batch, auth_headers, make_product
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Address
from quickpharma.models.log import Log
from quickpharma.models.lookup import LogTypeId, PlanStatusId, PrescriptionStatusId
from quickpharma.models.prescription import PlanEmailJob, PrescriptionPlan
from quickpharma.services import plan_service
from quickpharma.services.plan_service import STAGE_READY, STAGE_REMINDER, build_email_schedule
from test_prescriptions import add_approval, make_prescription


def approved_health_prescription(db, store, expiry, quantity=30):
    p = make_prescription(db, store["customer"], store["city"])
    product = make_product(db, "Losartan 50mg", price="3.000", requires_prescription=True)
    add_approval(db, p, product, quantity, expiry)
    return p, product


def test_email_schedule_stops_at_expiry():
    jobs = build_email_schedule(7, date(2026, 1, 1), date(2026, 3, 15))

    assert [(j["stage"], j["offset_days"]) for j in jobs] == [
        (STAGE_READY, 1),
        (STAGE_REMINDER, 28),
        (STAGE_READY, 31),
        (STAGE_REMINDER, 58),
        (STAGE_READY, 61),
    ]
    assert jobs[0]["dedup_key"] == "PP|7|READY_TODAY|D1"
    assert jobs[0]["send_on_utc"] == datetime(2026, 1, 2, 4, 30)


def test_create_pickup_plan(client, db, store, future_expiry):
    customer = store["customer"]
    p, product = approved_health_prescription(db, store, future_expiry)
    headers = auth_headers(customer)

    eligible = client.get(f"/api/PrescriptionPlan/user/{customer.id}/eligible", headers=headers).json()
    resp = client.post(
        f"/api/PrescriptionPlan/user/{customer.id}",
        json={"prescriptionId": p.id, "method": "pickup", "branchId": store["branch"].id},
        headers=headers,
    )

    assert [e["prescription_id"] for e in eligible] == [p.id]
    assert resp.status_code == 201
    body = resp.json()
    assert body["status_id"] == PlanStatusId.ONGOING
    assert body["total_amount"] == 90.0
    assert body["shipping"]["method"] == "pickup"
    assert body["items"][0]["product_name"] == "Losartan 50mg"
    assert db.query(PlanEmailJob).filter(PlanEmailJob.plan_id == body["plan_id"]).count() > 0
    assert client.get(f"/api/PrescriptionPlan/user/{customer.id}/eligible", headers=headers).json() == []


def test_only_one_ongoing_plan_per_prescription(client, db, store, future_expiry):
    customer = store["customer"]
    p, _ = approved_health_prescription(db, store, future_expiry)
    headers = auth_headers(customer)
    body = {"prescriptionId": p.id, "method": "pickup", "branchId": store["branch"].id}

    client.post(f"/api/PrescriptionPlan/user/{customer.id}", json=body, headers=headers)
    again = client.post(f"/api/PrescriptionPlan/user/{customer.id}", json=body, headers=headers)

    assert again.status_code == 409
    assert again.json()["detail"]["reason"] == "PLAN_EXISTS"


def test_delivery_plan_needs_mapped_city(client, db, store, future_expiry):
    customer = store["customer"]
    p, _ = approved_health_prescription(db, store, future_expiry)

    resp = client.post(
        f"/api/PrescriptionPlan/user/{customer.id}",
        json={"prescriptionId": p.id, "method": "delivery", "cityId": 999},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "CITY_NOT_MAPPED"


def test_pending_prescription_is_not_eligible(db, store, future_expiry):
    p = make_prescription(db, store["customer"], store["city"])

    result = plan_service.create_plan(db, store["customer"].id, p.id, "pickup", branch_id=store["branch"].id)

    assert result.ok is False
    assert result.reason == "PRESCRIPTION_NOT_ELIGIBLE"


def test_ready_email_takes_monthly_stock_once(db, store, future_expiry):
    p, product = approved_health_prescription(db, store, future_expiry, quantity=4)
    batch = add_batch(db, product, store["branch"], 10, None)
    plan = plan_service.create_plan(db, store["customer"].id, p.id, "pickup", branch_id=store["branch"].id).plan
    first_job = (
        db.query(PlanEmailJob)
        .filter(PlanEmailJob.plan_id == plan.id, PlanEmailJob.stage == STAGE_READY)
        .order_by(PlanEmailJob.send_on_utc)
        .first()
    )
    when = first_job.send_on_utc + timedelta(minutes=5)

    sent = plan_service.send_due_plan_emails(db, now_utc=when)
    sent_again = plan_service.send_due_plan_emails(db, now_utc=when)

    assert sent == 1
    assert sent_again == 0
    db.refresh(first_job)
    assert first_job.sent_at is not None
    assert first_job.stock_applied is True
    assert db.get(Inventory, batch.id).quantity == 6
    assert db.query(Log).filter(Log.log_type_id == LogTypeId.PRESCRIPTION_PLAN_EMAIL).count() == 1


def test_ready_email_waits_for_pickup_stock(db, store, future_expiry):
    p, _ = approved_health_prescription(db, store, future_expiry, quantity=4)
    plan = plan_service.create_plan(db, store["customer"].id, p.id, "pickup", branch_id=store["branch"].id).plan
    first_job = db.query(PlanEmailJob).filter(PlanEmailJob.plan_id == plan.id).order_by(PlanEmailJob.send_on_utc).first()

    sent = plan_service.send_due_plan_emails(db, now_utc=first_job.send_on_utc + timedelta(minutes=5))

    assert sent == 0
    db.refresh(first_job)
    assert first_job.sent_at is None


def test_plan_expires_with_its_prescription(db, store):
    soon = date.today() + timedelta(days=40)
    p, _ = approved_health_prescription(db, store, soon)
    plan = plan_service.create_plan(db, store["customer"].id, p.id, "delivery",
                                    city_id=store["city"].id, block="1", road="2", building_floor="3").plan

    plan_service.send_due_plan_emails(db, now_utc=datetime.utcnow() + timedelta(days=60))

    db.refresh(plan)
    db.refresh(p)
    assert plan.status_id == PlanStatusId.EXPIRED
    assert p.status_id == PrescriptionStatusId.EXPIRED


def test_delete_plan_removes_its_shipping(client, db, store, future_expiry):
    from quickpharma.models.order import Shipping

    customer = store["customer"]
    p, _ = approved_health_prescription(db, store, future_expiry)
    plan = plan_service.create_plan(db, customer.id, p.id, "delivery",
                                    city_id=store["city"].id, block="1", road="2", building_floor="3").plan
    plan_id = plan.id

    resp = client.delete(f"/api/PrescriptionPlan/user/{customer.id}/{plan_id}", headers=auth_headers(customer))

    assert resp.status_code == 200
    assert db.query(PrescriptionPlan).count() == 0
    assert db.query(Shipping).count() == 0
    assert db.query(PlanEmailJob).count() == 0


def test_scheduler_tick_isolates_failing_job(db, store, monkeypatch):
    from conftest import TestingSessionLocal
    from quickpharma.core.config import settings
    from quickpharma.tasks import scheduler

    p = make_prescription(db, store["customer"], store["city"])
    product = make_product(db, "Metformin", requires_prescription=True)
    add_approval(db, p, product, 60, date(2020, 1, 1))

    def broken(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(scheduler, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr(settings, "PLAN_EMAIL_SCHEDULER_ENABLED", True)
    monkeypatch.setattr(settings, "PRESCRIPTION_EXPIRY_SWEEP_ENABLED", True)
    monkeypatch.setattr(plan_service, "send_due_plan_emails", broken)

    results = scheduler.run_scheduled_jobs()

    assert results == {"plan_emails_sent": 0, "prescriptions_expired": 1}
    db.expire_all()
    assert db.get(type(p), p.id).status_id == PrescriptionStatusId.EXPIRED


def test_delivery_plan_needs_full_address(client, db, store, future_expiry):
    customer = store["customer"]
    p, _ = approved_health_prescription(db, store, future_expiry)
    addresses_before = db.query(Address).count()

    resp = client.post(
        f"/api/PrescriptionPlan/user/{customer.id}",
        json={"prescriptionId": p.id, "method": "delivery", "cityId": store["city"].id, "block": "12", "road": " "},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "ADDRESS_REQUIRED"
    assert db.query(PrescriptionPlan).count() == 0
    assert db.query(Address).count() == addresses_before


def test_switching_plan_to_delivery_needs_full_address(db, store, future_expiry):
    customer = store["customer"]
    p, _ = approved_health_prescription(db, store, future_expiry)
    plan = plan_service.create_plan(db, customer.id, p.id, "pickup", branch_id=store["branch"].id).plan

    result = plan_service.update_plan(db, customer.id, plan.id, "delivery", city_id=store["city"].id, block="12")

    assert (result.ok, result.reason) == (False, "ADDRESS_REQUIRED")
    db.refresh(plan)
    assert plan.shipping.is_delivery is False
