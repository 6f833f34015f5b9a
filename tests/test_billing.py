from datetime import date, timedelta

import pytest

from conftest import auth_headers, make_lease, make_payment, make_property, make_user
from propertyhub import celery, db
from propertyhub.models import DailyTaskLog, Payment
from propertyhub.scheduler import configure_beat_schedule
from propertyhub.tasks import claim_daily_run, update_overdue_payments_task
from propertyhub.utils import billing
from propertyhub.utils.errors import Conflict, Forbidden, NotFound, ValidationFailed


def test_due_date_clamps_to_month_end():
    assert billing.due_date_for(2026, 2, 31) == date(2026, 2, 28)
    assert billing.due_date_for(2028, 2, 30) == date(2028, 2, 29)
    assert billing.due_date_for(2026, 4, 31) == date(2026, 4, 30)
    assert billing.due_date_for(2026, 1, 15) == date(2026, 1, 15)


class TestGenerationTick:

    def test_creates_one_payment_per_lease_and_month(self, tenant, prop):
        lease = make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active", due_day=5)
        today = date(2026, 3, 5)

        first = billing.run_generation_tick(today)
        second = billing.run_generation_tick(today)

        assert first == {"success": True, "created": 1, "errors": []}
        assert second["created"] == 0
        payment = Payment.query.filter_by(lease_id=lease.id).one()
        assert payment.due_date == today
        assert payment.amount == lease.rent_amount
        assert payment.status == "pending"
        assert payment.type == "rent"
        assert payment.description == "Monthly rent for Maple Court 4B - March 2026"

    def test_skips_leases_not_due_today(self, tenant, prop):
        make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active", due_day=5)
        assert billing.run_generation_tick(date(2026, 3, 6))["created"] == 0

    def test_late_due_day_falls_on_short_month_end(self, tenant, prop):
        lease = make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active", due_day=31)

        assert billing.run_generation_tick(date(2026, 2, 27))["created"] == 0
        assert billing.run_generation_tick(date(2026, 2, 28))["created"] == 1
        assert billing.run_generation_tick(date(2026, 4, 30))["created"] == 1
        assert billing.run_generation_tick(date(2026, 5, 30))["created"] == 0

        due_dates = sorted(p.due_date for p in Payment.query.filter_by(lease_id=lease.id))
        assert due_dates == [date(2026, 2, 28), date(2026, 4, 30)]

    def test_skips_inactive_and_out_of_range_leases(self, landlord, tenant, prop):
        make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="draft", due_day=5)
        other = make_property(landlord, name="Birch House")
        make_lease(other, tenant, start=date(2026, 4, 1), end=date(2027, 3, 31), status="active", due_day=5)
        assert billing.run_generation_tick(date(2026, 3, 5))["created"] == 0

    def test_existing_manual_payment_counts_for_the_month(self, tenant, prop):
        lease = make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active", due_day=5)
        make_payment(prop, tenant, due=date(2026, 3, 20), lease=lease)
        assert billing.run_generation_tick(date(2026, 3, 5))["created"] == 0


class TestOverdueSweep:

    def test_marks_only_past_due_pending(self, tenant, prop):
        today = date(2026, 3, 10)
        yesterday = make_payment(prop, tenant, due=date(2026, 3, 9))
        tomorrow = make_payment(prop, tenant, due=date(2026, 3, 11))
        paid = make_payment(prop, tenant, due=date(2026, 2, 1), status="paid")

        assert billing.run_overdue_sweep(today) == {"success": True, "updated": 1}
        assert yesterday.status == "overdue"
        assert tomorrow.status == "pending"
        assert paid.status == "paid"

    def test_daily_tick_runs_both_steps(self, tenant, prop):
        make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active", due_day=10)
        make_payment(prop, tenant, due=date(2026, 2, 1))

        results = billing.run_daily_tick(date(2026, 3, 10))
        assert results["payments_generated"]["created"] == 1
        assert results["overdue_updated"]["updated"] == 1


class TestOnDemandGeneration:

    def test_generate_from_lease(self, landlord, tenant, prop):
        lease = make_lease(prop, tenant, status="active", due_day=31)
        payment = billing.generate_from_lease(lease, landlord, month=2, year=2026)
        assert payment.due_date == date(2026, 2, 28)

        with pytest.raises(Conflict) as excinfo:
            billing.generate_from_lease(lease, landlord, month=2, year=2026)
        assert excinfo.value.payload["payment"]["id"] == str(payment.id)

    def test_generate_from_lease_rules(self, landlord, tenant, outsider, prop):
        draft = make_lease(prop, tenant)
        with pytest.raises(Conflict, match="active leases"):
            billing.generate_from_lease(draft, landlord, month=1, year=2026)
        with pytest.raises(Forbidden):
            billing.generate_from_lease(draft, outsider, month=1, year=2026)
        with pytest.raises(NotFound):
            billing.generate_from_lease(None, landlord)

    def test_month_must_be_valid(self, landlord, tenant, prop):
        lease = make_lease(prop, tenant, status="active")
        with pytest.raises(ValidationFailed):
            billing.generate_from_lease(lease, landlord, month=13, year=2026)
        with pytest.raises(ValidationFailed):
            billing.generate_from_lease(lease, landlord, month=0, year=2026)

    def test_generate_for_landlord(self, landlord, tenant, prop):
        today = date(2026, 5, 15)
        first = make_lease(prop, tenant, start=date(2026, 1, 1), end=date(2026, 12, 31), status="active")
        second_prop = make_property(landlord, name="Birch House")
        make_lease(second_prop, make_user("tenant"), start=date(2026, 1, 1), end=date(2026, 12, 31), status="active")
        billing.generate_from_lease(first, landlord, month=5, year=2026)

        results = billing.generate_for_landlord(landlord, today=today)
        assert len(results["created"]) == 1
        assert len(results["existing"]) == 1
        assert results["created"][0]["property"] == "Birch House"
        assert results["errors"] == []

    def test_generate_for_landlord_without_leases(self, outsider):
        with pytest.raises(NotFound, match="No active leases"):
            billing.generate_for_landlord(outsider)


class TestDailyJobs:

    def test_claim_daily_run_once_per_day(self):
        today = date(2026, 3, 1)
        assert claim_daily_run("update_overdue_payments", today)
        assert not claim_daily_run("update_overdue_payments", today)
        assert claim_daily_run("generate_monthly_payments", today)
        assert claim_daily_run("update_overdue_payments", date(2026, 3, 2))
        assert DailyTaskLog.query.count() == 3

    def test_task_skips_second_run(self, tenant, prop):
        make_payment(prop, tenant, due=date(2020, 1, 1))

        first = update_overdue_payments_task.delay().get()
        second = update_overdue_payments_task.delay().get()

        assert first == {"success": True, "updated": 1}
        assert second == "Already ran today"

    def test_beat_schedule(self, app):
        app.config["LEASE_EXPIRY_SWEEP_ENABLED"] = False
        configure_beat_schedule(app)
        schedule = celery.conf.beat_schedule
        assert schedule["generate-monthly-payments"]["task"] == "propertyhub.tasks.generate_monthly_payments_task"
        assert schedule["update-overdue-payments"]["task"] == "propertyhub.tasks.update_overdue_payments_task"
        assert "auto-expire-leases" not in schedule

        app.config["LEASE_EXPIRY_SWEEP_ENABLED"] = True
        try:
            configure_beat_schedule(app)
            assert "auto-expire-leases" in celery.conf.beat_schedule
        finally:
            app.config["LEASE_EXPIRY_SWEEP_ENABLED"] = False
            configure_beat_schedule(app)


class TestBillingRoutes:

    def test_generate_from_lease_route(self, client, landlord, tenant, prop):
        lease = make_lease(prop, tenant, status="active")
        headers = auth_headers(landlord)
        payload = {"lease_id": str(lease.id), "month": 7, "year": 2026}

        created = client.post("/api/payments/generate-from-lease", json=payload, headers=headers)
        duplicate = client.post("/api/payments/generate-from-lease", json=payload, headers=headers)

        assert created.status_code == 201
        assert duplicate.status_code == 400
        assert duplicate.get_json()["payment"]["id"] == created.get_json()["payment"]["id"]

    def test_run_scheduler_ignores_client_date(self, client, landlord, outsider, tenant, prop):
        other = make_property(outsider, name="Foreign Place")
        tomorrow = date.today() + timedelta(days=1)
        upcoming = make_payment(other, tenant, due=tomorrow)

        response = client.post("/api/payments/run-scheduler", json={"date": "2099-01-01"},
                               headers=auth_headers(landlord))
        assert response.status_code == 200

        db.session.expire_all()
        assert db.session.get(Payment, upcoming.id).status == "pending"

    def test_tenant_cannot_run_scheduler(self, client, tenant):
        response = client.post("/api/payments/run-scheduler", json={}, headers=auth_headers(tenant))
        assert response.status_code == 403
