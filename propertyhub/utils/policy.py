"""Ownership rules consulted before every read or mutation.

Each ``ensure_*`` helper raises :class:`Forbidden` instead of returning a
boolean so callers cannot silently ignore a failed check.
"""
from propertyhub.utils.errors import Forbidden


def same_id(a, b):
    return a is not None and b is not None and str(a) == str(b)


# ---------------- PROPERTY ----------------
def ensure_property_owner(user, prop, message="Not authorized to manage this property"):
    if not same_id(prop.landlord_id, user.id):
        raise Forbidden(message)


def can_view_property(user, prop):
    if user.role == "landlord":
        return same_id(prop.landlord_id, user.id)
    if user.role == "tenant":
        return same_id(prop.current_tenant_id, user.id)
    if user.role == "manager":
        return same_id(prop.assigned_manager_id, user.id)
    return False


def ensure_can_view_property(user, prop):
    if not can_view_property(user, prop):
        raise Forbidden("Not authorized to view this property")


def ensure_occupant(user, prop, message="You are not a tenant of this property"):
    if not same_id(prop.current_tenant_id, user.id):
        raise Forbidden(message)


# ---------------- LEASE ----------------
def lease_party(user, lease):
    """Return ``"landlord"``, ``"tenant"`` or ``None`` for the user's side of the lease."""
    if same_id(lease.landlord_id, user.id):
        return "landlord"
    if same_id(lease.tenant_id, user.id):
        return "tenant"
    return None


def ensure_lease_party(user, lease, message="Not authorized to view this lease"):
    party = lease_party(user, lease)
    if party is None:
        raise Forbidden(message)
    return party


def ensure_lease_landlord(user, lease):
    if not same_id(lease.landlord_id, user.id):
        raise Forbidden("Not authorized")


# ---------------- PAYMENT ----------------
def ensure_payment_party(user, payment, message="Not authorized to view this payment"):
    if not (same_id(payment.tenant_id, user.id) or same_id(payment.landlord_id, user.id)):
        raise Forbidden(message)


def ensure_payment_landlord(user, payment):
    if not same_id(payment.landlord_id, user.id):
        raise Forbidden("Not authorized")


def ensure_payment_tenant(user, payment):
    if not same_id(payment.tenant_id, user.id):
        raise Forbidden("Not authorized")


# ---------------- MAINTENANCE ----------------
# Fields each side of a maintenance request may change on update.
MAINTENANCE_FIELD_MASK = {
    "tenant": {"description"},
    "manager": {
        "title", "description", "category", "priority", "status",
        "estimated_cost", "actual_cost", "scheduled_date",
    },
    "landlord": {
        "title", "description", "category", "priority", "status",
        "estimated_cost", "actual_cost", "scheduled_date",
    },
}


def maintenance_role(user, request):
    """Landlord wins over assigned manager, which wins over tenant."""
    if same_id(request.landlord_id, user.id):
        return "landlord"
    if same_id(request.assigned_to_id, user.id):
        return "manager"
    if same_id(request.tenant_id, user.id):
        return "tenant"
    return None


def ensure_maintenance_participant(user, request, message="Not authorized to view this request"):
    role = maintenance_role(user, request)
    if role is None:
        raise Forbidden(message)
    return role


def ensure_maintenance_landlord(user, request, message="Not authorized"):
    if not same_id(request.landlord_id, user.id):
        raise Forbidden(message)


def allowed_maintenance_fields(role):
    return MAINTENANCE_FIELD_MASK.get(role, set())


# ---------------- MESSAGES ----------------
def ensure_message_sender(user, message):
    if not same_id(message.sender_id, user.id):
        raise Forbidden("Not authorized to delete this message")


def ensure_message_recipient(user, message):
    if not any(same_id(r.id, user.id) for r in message.recipients):
        raise Forbidden("Not authorized")
