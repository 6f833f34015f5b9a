"""
Lease lifecycle.

``draft`` leases become ``pending`` once one party has signed and ``active``
when both have. Activating a lease occupies the property; terminating it
always frees the property again. A fully signed active lease is frozen:
it must be terminated before it can be edited or deleted.
"""
import os
from datetime import date, timedelta
from flask import current_app

from propertyhub import db
from propertyhub.models import Lease, Property, User
from propertyhub.utils.documents import generate_lease_document
from propertyhub.utils.errors import Conflict, NotFound, ValidationFailed
from propertyhub.utils.helper import commit_or_conflict, dispatch, parse_date, parse_uuid
from propertyhub.utils.policy import (
    ensure_lease_landlord,
    ensure_lease_party,
    ensure_property_owner,
)

# Leases in these states block overlapping leases on the same property.
BLOCKING_STATUSES = ("active", "pending")

UPDATABLE_FIELDS = (
    "start_date", "end_date", "rent_amount", "deposit_amount",
    "payment_due_day", "terms",
)


def get_lease(lease_id):
    lease = db.session.get(Lease, parse_uuid(lease_id, "lease id"))
    if not lease:
        raise NotFound("Lease not found")
    return lease


def find_overlapping_lease(property_id, start_date, end_date, exclude_id=None):
    query = Lease.query.filter(
        Lease.property_id == property_id,
        Lease.status.in_(BLOCKING_STATUSES),
        Lease.start_date <= end_date,
        Lease.end_date >= start_date,
    )
    if exclude_id is not None:
        query = query.filter(Lease.id != exclude_id)
    return query.first()


def _validate_terms(start_date, end_date, rent_amount, deposit_amount, payment_due_day):
    if end_date <= start_date:
        raise ValidationFailed("End date must be after start date")
    if rent_amount is None or float(rent_amount) < 0:
        raise ValidationFailed("Rent amount must be a positive number")
    if deposit_amount is not None and float(deposit_amount) < 0:
        raise ValidationFailed("Deposit amount must be a positive number")
    if not 1 <= int(payment_due_day) <= 31:
        raise ValidationFailed("Payment due day must be between 1 and 31")


def list_leases(actor, status=None, property_id=None):
    query = Lease.query
    if actor.role == "landlord":
        query = query.filter(Lease.landlord_id == actor.id)
    elif actor.role == "tenant":
        query = query.filter(Lease.tenant_id == actor.id)
    else:
        managed = db.session.query(Property.id).filter(Property.assigned_manager_id == actor.id)
        query = query.filter(Lease.property_id.in_(managed))

    if status:
        query = query.filter(Lease.status == status)
    if property_id:
        query = query.filter(Lease.property_id == parse_uuid(property_id, "property id"))
    return query.order_by(Lease.created_date.desc()).all()


def create_lease(actor, data, document=None):
    """
    Create a ``draft`` lease between the actor (landlord) and a tenant.

    ``document`` is the path of an uploaded lease file, if any.
    """
    missing = [f for f in ("property_id", "tenant_id", "start_date", "end_date", "rent_amount", "terms")
               if data.get(f) in (None, "")]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    prop = db.session.get(Property, parse_uuid(data["property_id"], "property id"))
    if not prop:
        raise NotFound("Property not found")
    ensure_property_owner(actor, prop, "Not authorized to create lease for this property")

    tenant = db.session.get(User, parse_uuid(data["tenant_id"], "tenant id"))
    if not tenant or tenant.role != "tenant":
        raise ValidationFailed("Invalid tenant")

    start_date = parse_date(data["start_date"], "start date")
    end_date = parse_date(data["end_date"], "end date")
    payment_due_day = int(data.get("payment_due_day") or 1)
    deposit_amount = data.get("deposit_amount")
    _validate_terms(start_date, end_date, data["rent_amount"], deposit_amount, payment_due_day)

    if find_overlapping_lease(prop.id, start_date, end_date):
        raise Conflict("Property already has an active lease for this period")

    lease = Lease(
        property_id=prop.id,
        landlord_id=actor.id,
        tenant_id=tenant.id,
        start_date=start_date,
        end_date=end_date,
        rent_amount=float(data["rent_amount"]),
        deposit_amount=float(deposit_amount or 0),
        payment_due_day=payment_due_day,
        terms=data["terms"],
        document=document,
        status="draft",
    )
    db.session.add(lease)
    db.session.commit()
    current_app.logger.info(f"Lease {lease.id} created for property {prop.id} and tenant {tenant.id}")
    return lease


def sign_lease(lease, actor, signature_data, ip_address, signed_at=None):
    """
    Record the actor's signature.

    A party can sign once; the second signature activates the lease and
    puts the tenant into the property. The agreement PDF is queued after
    the commit and its failure never affects the signature.
    """
    party = ensure_lease_party(actor, lease, "Not authorized to sign this lease")
    if not signature_data:
        raise ValidationFailed("Signature is required")
    if lease.status in ("terminated", "expired"):
        raise Conflict(f"Cannot sign a {lease.status} lease")
    if lease.has_signed(party):
        raise Conflict("You have already signed this lease")

    lease.record_signature(party, signature_data, ip_address, signed_at=signed_at)

    if lease.is_fully_signed:
        lease.status = "active"
        lease.property.occupy(lease.tenant_id)
    else:
        lease.status = "pending"

    commit_or_conflict("Lease was signed by another request. Please reload and try again.")
    current_app.logger.info(f"Lease {lease.id} signed by {party}; status is now {lease.status}")

    if lease.status == "active":
        from propertyhub.tasks import generate_lease_document_task
        dispatch(generate_lease_document_task, str(lease.id))
    return lease


def terminate_lease(lease, actor):
    ensure_lease_landlord(actor, lease)
    lease.status = "terminated"
    lease.property.vacate()
    commit_or_conflict()
    current_app.logger.info(f"Lease {lease.id} terminated; property {lease.property_id} is available")
    return lease


def _ensure_editable(lease, action):
    if lease.status == "active" and lease.is_fully_signed:
        raise Conflict(f"Cannot {action} a fully signed active lease. Terminate it first.")


def update_lease(lease, actor, data, document=None):
    ensure_lease_landlord(actor, lease)
    _ensure_editable(lease, "update")

    changes = {f: data[f] for f in UPDATABLE_FIELDS if f in data}
    for field in ("start_date", "end_date"):
        if field in changes:
            changes[field] = parse_date(changes[field], field.replace("_", " "))

    start_date = changes.get("start_date", lease.start_date)
    end_date = changes.get("end_date", lease.end_date)
    _validate_terms(
        start_date,
        end_date,
        changes.get("rent_amount", lease.rent_amount),
        changes.get("deposit_amount", lease.deposit_amount),
        changes.get("payment_due_day", lease.payment_due_day),
    )

    if ("start_date" in changes or "end_date" in changes) and \
            find_overlapping_lease(lease.property_id, start_date, end_date, exclude_id=lease.id):
        raise Conflict("Property already has an active lease for this period")

    for field, value in changes.items():
        if field in ("rent_amount", "deposit_amount"):
            value = float(value)
        elif field == "payment_due_day":
            value = int(value)
        setattr(lease, field, value)
    if document:
        lease.document = document

    commit_or_conflict()
    return lease


def delete_lease(lease, actor):
    ensure_lease_landlord(actor, lease)
    _ensure_editable(lease, "delete")
    db.session.delete(lease)
    commit_or_conflict()
    current_app.logger.info(f"Lease {lease.id} deleted")


def expiring_leases(actor, days=60, today=None):
    today = today or date.today()
    return Lease.query.filter(
        Lease.landlord_id == actor.id,
        Lease.status == "active",
        Lease.end_date >= today,
        Lease.end_date <= today + timedelta(days=days),
    ).order_by(Lease.end_date.asc()).all()


def _stored_upload(path):
    if not path:
        return False
    root = os.path.realpath(current_app.config["UPLOAD_FOLDER"])
    resolved = os.path.realpath(path)
    return os.path.commonpath([root, resolved]) == root and os.path.isfile(resolved)


def lease_document(lease, actor):
    """Path of the lease PDF, rendering it again when the stored file is missing or outside the upload folder."""
    ensure_lease_party(actor, lease)
    if _stored_upload(lease.document):
        return lease.document
    if not lease.is_fully_signed:
        raise Conflict("Lease document is available once both parties have signed")

    lease.document = generate_lease_document(lease, lease.landlord, lease.tenant, lease.property)
    commit_or_conflict()
    return lease.document


def auto_expire_leases(today=None):
    """Flip active leases whose end date has passed to ``expired``."""
    today = today or date.today()
    expired = Lease.query.filter(Lease.status == "active", Lease.end_date < today).all()
    for lease in expired:
        lease.status = "expired"
    db.session.commit()
    return len(expired)
