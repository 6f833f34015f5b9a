import uuid
from types import SimpleNamespace

import pytest

from propertyhub.utils import policy
from propertyhub.utils.errors import Forbidden


def user(role):
    return SimpleNamespace(id=uuid.uuid4(), role=role)


landlord, tenant, manager, stranger = user("landlord"), user("tenant"), user("manager"), user("tenant")


def test_property_visibility():
    prop = SimpleNamespace(landlord_id=landlord.id, current_tenant_id=tenant.id, assigned_manager_id=manager.id)
    for who in (landlord, tenant, manager):
        policy.ensure_can_view_property(who, prop)
    with pytest.raises(Forbidden):
        policy.ensure_can_view_property(stranger, prop)
    with pytest.raises(Forbidden):
        policy.ensure_property_owner(tenant, prop)


def test_ids_compare_across_types():
    prop = SimpleNamespace(landlord_id=str(landlord.id), current_tenant_id=None, assigned_manager_id=None)
    policy.ensure_property_owner(landlord, prop)
    assert not policy.same_id(None, None)


def test_lease_parties():
    lease = SimpleNamespace(landlord_id=landlord.id, tenant_id=tenant.id)
    assert policy.ensure_lease_party(landlord, lease) == "landlord"
    assert policy.ensure_lease_party(tenant, lease) == "tenant"
    with pytest.raises(Forbidden):
        policy.ensure_lease_party(manager, lease)
    with pytest.raises(Forbidden):
        policy.ensure_lease_landlord(tenant, lease)


def test_payment_sides():
    payment = SimpleNamespace(landlord_id=landlord.id, tenant_id=tenant.id)
    policy.ensure_payment_party(tenant, payment)
    policy.ensure_payment_tenant(tenant, payment)
    with pytest.raises(Forbidden):
        policy.ensure_payment_tenant(landlord, payment)
    with pytest.raises(Forbidden):
        policy.ensure_payment_landlord(tenant, payment)
    with pytest.raises(Forbidden):
        policy.ensure_payment_party(stranger, payment)


def test_maintenance_roles_and_field_mask():
    request = SimpleNamespace(landlord_id=landlord.id, tenant_id=tenant.id, assigned_to_id=manager.id)
    assert policy.maintenance_role(landlord, request) == "landlord"
    assert policy.maintenance_role(manager, request) == "manager"
    assert policy.maintenance_role(tenant, request) == "tenant"
    assert policy.maintenance_role(stranger, request) is None

    assert policy.allowed_maintenance_fields("tenant") == {"description"}
    assert "status" in policy.allowed_maintenance_fields("manager")
    assert policy.allowed_maintenance_fields(None) == set()

    with pytest.raises(Forbidden):
        policy.ensure_maintenance_landlord(manager, request)


def test_message_sender_and_recipients():
    message = SimpleNamespace(sender_id=landlord.id, recipients=[tenant])
    policy.ensure_message_sender(landlord, message)
    policy.ensure_message_recipient(tenant, message)
    with pytest.raises(Forbidden):
        policy.ensure_message_sender(tenant, message)
    with pytest.raises(Forbidden):
        policy.ensure_message_recipient(landlord, message)
