"""
Payment lifecycle.

``pending -> processing -> paid | failed`` for card payments, ``pending ->
overdue`` for the daily sweep. A receipt number is handed out once, when a
payment first reaches ``paid``.
"""
import os
import random
from datetime import date, datetime
from flask import current_app
from sqlalchemy import func

from propertyhub import db
from propertyhub.models import Payment, Property, User
from propertyhub.utils.documents import generate_payment_receipt
from propertyhub.utils.errors import Conflict, GatewayDeclined, NotFound, ValidationFailed
from propertyhub.utils.gateway import CardValidationError, DemoPaymentGateway
from propertyhub.utils.helper import commit_or_conflict, dispatch, parse_date, parse_uuid
from propertyhub.utils.policy import (
    ensure_occupant,
    ensure_payment_landlord,
    ensure_payment_party,
    ensure_payment_tenant,
    ensure_property_owner,
)

RECEIPT_NUMBER_ATTEMPTS = 20

UPDATABLE_FIELDS = (
    "amount", "type", "description", "due_date", "status", "payment_method",
    "notes", "late_fee_amount", "late_fee_applied",
)


def get_payment(payment_id):
    payment = db.session.get(Payment, parse_uuid(payment_id, "payment id"))
    if not payment:
        raise NotFound("Payment not found")
    return payment


def generate_receipt_number(now=None, rng=random):
    now = now or datetime.now()
    return f"RCP-{now.strftime('%Y%m')}-{rng.randrange(10000):04d}"


def assign_receipt_number(payment, now=None, rng=random):
    """Give a paid payment its receipt number, drawing again on collision."""
    if payment.receipt_number:
        return payment.receipt_number

    for _ in range(RECEIPT_NUMBER_ATTEMPTS):
        candidate = generate_receipt_number(now, rng)
        taken = db.session.query(Payment.id).filter(Payment.receipt_number == candidate).first()
        if not taken:
            payment.receipt_number = candidate
            return candidate
    raise Conflict("Could not allocate a receipt number. Please try again.")


def _mark_paid(payment, paid_at=None):
    payment.status = "paid"
    if not payment.paid_date:
        payment.paid_date = paid_at or datetime.now()
    assign_receipt_number(payment, now=payment.paid_date)


def list_payments(actor, status=None, property_id=None, payment_type=None):
    query = Payment.query
    if actor.role == "landlord":
        query = query.filter(Payment.landlord_id == actor.id)
    elif actor.role == "tenant":
        query = query.filter(Payment.tenant_id == actor.id)
    else:
        managed = db.session.query(Property.id).filter(Property.assigned_manager_id == actor.id)
        query = query.filter(Payment.property_id.in_(managed))

    if status:
        query = query.filter(Payment.status == status)
    if property_id:
        query = query.filter(Payment.property_id == parse_uuid(property_id, "property id"))
    if payment_type:
        query = query.filter(Payment.type == payment_type)
    return query.order_by(Payment.created_date.desc()).all()


def _parse_amount(value):
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed("Amount must be a positive number")
    if amount < 0:
        raise ValidationFailed("Amount must be a positive number")
    return amount


def create_payment(actor, data):
    """
    Landlords bill a tenant on one of their properties; tenants may only
    record a payment for the property they currently occupy.
    """
    missing = [f for f in ("property_id", "amount", "due_date") if data.get(f) in (None, "")]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    prop = db.session.get(Property, parse_uuid(data["property_id"], "property id"))
    if not prop:
        raise NotFound("Property not found")

    if actor.role == "tenant":
        ensure_occupant(actor, prop)
        tenant = actor
    else:
        ensure_property_owner(actor, prop, "Not authorized")
        if not data.get("tenant_id"):
            raise ValidationFailed("Missing required fields: tenant_id")
        tenant = db.session.get(User, parse_uuid(data["tenant_id"], "tenant id"))
        if not tenant or tenant.role != "tenant":
            raise ValidationFailed("Invalid tenant")

    payment_type = data.get("type") or "rent"
    if payment_type not in Payment.TYPES:
        raise ValidationFailed(f"Invalid payment type. Allowed: {', '.join(Payment.TYPES)}")

    payment = Payment(
        property_id=prop.id,
        tenant_id=tenant.id,
        landlord_id=prop.landlord_id,
        lease_id=parse_uuid(data["lease_id"], "lease id") if data.get("lease_id") else None,
        amount=_parse_amount(data["amount"]),
        type=payment_type,
        description=data.get("description"),
        due_date=parse_date(data["due_date"], "due date"),
        status="pending",
    )
    db.session.add(payment)
    db.session.commit()
    current_app.logger.info(f"Payment {payment.id} of {payment.amount} created for tenant {tenant.id}")
    return payment


def start_processing(payment, actor, card, gateway=None):
    """
    Charge the tenant's card through the demo gateway.

    The payment is committed as ``processing`` before the gateway is called.
    Any rejection (malformed card or decline) leaves it ``failed`` and raises
    :class:`GatewayDeclined`; the tenant can retry. Returns the payment and
    the gateway result on success.
    """
    ensure_payment_tenant(actor, payment)
    if payment.status == "paid":
        raise Conflict("Payment already processed")

    payment.status = "processing"
    commit_or_conflict("Payment is already being processed. Please reload and try again.")

    gateway = gateway or DemoPaymentGateway.from_config(current_app.config)
    try:
        result = gateway.process_payment(
            card.get("card_number"),
            card.get("expiry_month"),
            card.get("expiry_year"),
            card.get("cvv"),
            payment.amount,
            zip_code=card.get("zip_code"),
        )
    except CardValidationError as e:
        result = {"status": "failed", "error": e.message}

    if result["status"] != "success":
        payment.status = "failed"
        commit_or_conflict()
        current_app.logger.warning(f"Payment {payment.id} failed: {result.get('error')}")
        raise GatewayDeclined(
            result.get("error") or "Payment failed",
            payload={"payment": payment.to_dict(), "error": result},
        )

    payment.payment_method = "demo_card"
    payment.card_last4 = result["card_last4"]
    payment.card_brand = result["card_brand"]
    payment.transaction_id = result["transaction_id"]
    payment.processing_time = result["processing_time"]
    _mark_paid(payment)
    commit_or_conflict()
    current_app.logger.info(f"Payment {payment.id} paid, transaction {payment.transaction_id}")

    from propertyhub.tasks import generate_payment_receipt_task, send_payment_receipt_task
    dispatch(generate_payment_receipt_task, str(payment.id))
    dispatch(send_payment_receipt_task, str(payment.id))
    return payment, result


def mark_overdue(today=None):
    """Move every ``pending`` payment due before ``today`` to ``overdue``."""
    today = today or date.today()
    payments = Payment.query.filter(Payment.status == "pending", Payment.due_date < today).all()
    for payment in payments:
        payment.status = "overdue"
    commit_or_conflict()
    return len(payments)


def update_payment(payment, actor, data):
    ensure_payment_landlord(actor, payment)

    changes = {f: data[f] for f in UPDATABLE_FIELDS if f in data}
    if "amount" in changes:
        changes["amount"] = _parse_amount(changes["amount"])
    if "due_date" in changes:
        changes["due_date"] = parse_date(changes["due_date"], "due date")
    if "status" in changes and changes["status"] not in Payment.STATUSES:
        raise ValidationFailed(f"Invalid status. Allowed: {', '.join(Payment.STATUSES)}")
    if "type" in changes and changes["type"] not in Payment.TYPES:
        raise ValidationFailed(f"Invalid payment type. Allowed: {', '.join(Payment.TYPES)}")
    if "payment_method" in changes and changes["payment_method"] not in Payment.METHODS:
        raise ValidationFailed(f"Invalid payment method. Allowed: {', '.join(Payment.METHODS)}")

    if payment.status == "paid" and changes.get("status") not in (None, "paid", "refunded"):
        raise Conflict("A completed payment can only be refunded")

    new_status = changes.pop("status", None)
    for field, value in changes.items():
        setattr(payment, field, value)

    if new_status == "paid" and payment.status != "paid":
        _mark_paid(payment)
    elif new_status:
        payment.status = new_status

    commit_or_conflict()
    return payment


def delete_payment(payment, actor):
    ensure_payment_landlord(actor, payment)
    if payment.status == "paid":
        raise Conflict("Cannot delete completed payment. Consider issuing a refund instead.")
    db.session.delete(payment)
    commit_or_conflict()
    current_app.logger.info(f"Payment {payment.id} deleted")


def payment_receipt(payment, actor):
    """Path of the receipt PDF; rendered again when the stored file is missing."""
    ensure_payment_party(actor, payment, "Not authorized")
    if payment.status != "paid":
        raise Conflict("Receipt not available for unpaid payment")

    if payment.receipt_url and os.path.exists(payment.receipt_url):
        return payment.receipt_url

    assign_receipt_number(payment, now=payment.paid_date)
    payment.receipt_url = generate_payment_receipt(payment, payment.tenant, payment.landlord, payment.property)
    commit_or_conflict()
    return payment.receipt_url


def payment_stats(actor):
    query = db.session.query(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
    if actor.role == "landlord":
        query = query.filter(Payment.landlord_id == actor.id)
    elif actor.role == "tenant":
        query = query.filter(Payment.tenant_id == actor.id)
    else:
        managed = db.session.query(Property.id).filter(Property.assigned_manager_id == actor.id)
        query = query.filter(Payment.property_id.in_(managed))

    details = [
        {"status": status, "count": count, "total": float(total)}
        for status, count, total in query.group_by(Payment.status).all()
    ]
    totals = {d["status"]: d["total"] for d in details}
    return {
        "total_paid": totals.get("paid", 0.0),
        "total_pending": totals.get("pending", 0.0),
        "total_overdue": totals.get("overdue", 0.0),
        "details": details,
    }
