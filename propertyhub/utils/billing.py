"""
Recurring rent generation and the overdue sweep.

Both entry points take ``today`` so the daily tick can be driven by Celery
beat, the manual route or a test with a fixed date.
"""
import calendar
from datetime import date
from flask import current_app

from propertyhub import db
from propertyhub.models import Lease, Payment
from propertyhub.utils.errors import Conflict, NotFound, ValidationFailed
from propertyhub.utils.payments import mark_overdue
from propertyhub.utils.policy import ensure_lease_landlord


def month_bounds(year, month):
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def due_date_for(year, month, due_day):
    """The due date in the given month; days past the month's end fall on its last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def due_day_filter(today):
    if today.day == calendar.monthrange(today.year, today.month)[1]:
        return Lease.payment_due_day >= today.day
    return Lease.payment_due_day == today.day


def existing_payment_for_month(lease_id, year, month):
    first, last = month_bounds(year, month)
    return Payment.query.filter(
        Payment.lease_id == lease_id,
        Payment.due_date >= first,
        Payment.due_date <= last,
    ).first()


def build_rent_payment(lease, year, month):
    return Payment(
        property_id=lease.property_id,
        tenant_id=lease.tenant_id,
        landlord_id=lease.landlord_id,
        lease_id=lease.id,
        amount=lease.rent_amount,
        type="rent",
        description=f"Monthly rent for {lease.property.name} - {calendar.month_name[month]} {year}",
        due_date=due_date_for(year, month, lease.payment_due_day),
        status="pending",
    )


def run_generation_tick(today=None):
    """
    Create this month's rent payment for every active lease due today.

    On the month's last day, leases whose due day lies past the end of the
    month are due as well, matching ``due_date_for``.

    A lease that already has a payment due this month is skipped. Failures
    are isolated per lease and reported in ``errors``.
    """
    today = today or date.today()
    leases = Lease.query.filter(
        Lease.status == "active",
        due_day_filter(today),
        Lease.start_date <= today,
        Lease.end_date >= today,
    ).all()
    current_app.logger.info(f"[{today}] Found {len(leases)} leases with payment due today")

    created = 0
    errors = []
    for lease in leases:
        try:
            if existing_payment_for_month(lease.id, today.year, today.month):
                current_app.logger.info(f"Payment already exists for lease {lease.id} this month")
                continue
            db.session.add(build_rent_payment(lease, today.year, today.month))
            db.session.commit()
            created += 1
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error generating payment for lease {lease.id}: {e}", exc_info=True)
            errors.append({"lease_id": str(lease.id), "error": str(e)})

    current_app.logger.info(f"Generated {created} monthly payments")
    return {"success": True, "created": created, "errors": errors}


def run_overdue_sweep(today=None):
    today = today or date.today()
    try:
        updated = mark_overdue(today)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating overdue payments: {e}", exc_info=True)
        return {"success": False, "updated": 0, "error": str(e)}

    current_app.logger.info(f"Marked {updated} payments as overdue")
    return {"success": True, "updated": updated}


def run_daily_tick(today=None):
    """Generation first, then the sweep; neither step can stop the other."""
    today = today or date.today()
    try:
        generation = run_generation_tick(today)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Payment generation failed: {e}", exc_info=True)
        generation = {"success": False, "created": 0, "errors": [str(e)]}
    return {"payments_generated": generation, "overdue_updated": run_overdue_sweep(today)}


def _target_month(month, year, today):
    month = int(month) if month not in (None, "") else today.month
    year = int(year) if year not in (None, "") else today.year
    if not 1 <= month <= 12:
        raise ValidationFailed("Month must be between 1 and 12")
    return month, year


def generate_from_lease(lease, actor, month=None, year=None, today=None):
    """Create the rent payment for one lease and month on demand."""
    if lease is None:
        raise NotFound("Lease not found")
    ensure_lease_landlord(actor, lease)
    if lease.status != "active":
        raise Conflict("Can only generate payments for active leases")

    month, year = _target_month(month, year, today or date.today())
    existing = existing_payment_for_month(lease.id, year, month)
    if existing:
        raise Conflict("Payment already exists for this month", payload={"payment": existing.to_dict()})

    payment = build_rent_payment(lease, year, month)
    db.session.add(payment)
    db.session.commit()
    current_app.logger.info(f"Payment {payment.id} generated from lease {lease.id} for {month}/{year}")
    return payment


def generate_for_landlord(actor, month=None, year=None, today=None):
    """Create the month's rent payment for every current active lease of a landlord."""
    today = today or date.today()
    month, year = _target_month(month, year, today)

    leases = Lease.query.filter(
        Lease.landlord_id == actor.id,
        Lease.status == "active",
        Lease.start_date <= today,
        Lease.end_date >= today,
    ).all()
    if not leases:
        raise NotFound("No active leases found")

    results = {"created": [], "existing": [], "errors": []}
    for lease in leases:
        entry = {"lease_id": str(lease.id), "property": lease.property.name}
        try:
            existing = existing_payment_for_month(lease.id, year, month)
            if existing:
                results["existing"].append({**entry, "payment": existing.to_dict()})
                continue
            payment = build_rent_payment(lease, year, month)
            db.session.add(payment)
            db.session.commit()
            results["created"].append({**entry, "payment": payment.to_dict()})
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error generating payment for lease {lease.id}: {e}", exc_info=True)
            results["errors"].append({**entry, "error": str(e)})
    return results
