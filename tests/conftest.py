import random
from datetime import date, timedelta

import fakeredis
import pytest
import redis

from propertyhub import create_app, db
from propertyhub.config import TestConfig
from propertyhub.models import User, Property, Lease, Payment
from propertyhub.utils.gateway import DemoPaymentGateway
from propertyhub.utils.helper import AuthHelper


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    base = tmp_path_factory.mktemp("propertyhub")

    class Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{base / 'test.db'}"
        UPLOAD_FOLDER = str(base / "uploads")

    server = fakeredis.FakeServer()
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(redis.Redis, "from_url", lambda url, **kwargs: fakeredis.FakeRedis(server=server, **kwargs))
        yield create_app(Config)


@pytest.fixture(autouse=True)
def database(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
        yield db
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway():
    """Zero-latency gateway with a seeded random source."""
    return DemoPaymentGateway(min_delay=0, max_delay=0, rng=random.Random(7))


def make_user(role, name=None, email=None, password="secret123", phone=None):
    user = User(
        name=name or f"{role.title()} User",
        email=email or f"{role}-{random.randrange(10 ** 8)}@example.com",
        phone=phone,
        password=AuthHelper().hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_property(landlord, **overrides):
    fields = dict(
        landlord_id=landlord.id,
        name="Maple Court 4B",
        street="12 Maple Street",
        city="Springfield",
        state="IL",
        zip_code="62701",
        type="apartment",
        bedrooms=2,
        bathrooms=1,
        rent_amount=1200.0,
        deposit_amount=1200.0,
    )
    fields.update(overrides)
    prop = Property(**fields)
    db.session.add(prop)
    db.session.commit()
    return prop


def make_lease(prop, tenant, start=None, end=None, status="draft", due_day=1, rent=1200.0):
    start = start or date.today() - timedelta(days=30)
    lease = Lease(
        property_id=prop.id,
        landlord_id=prop.landlord_id,
        tenant_id=tenant.id,
        start_date=start,
        end_date=end or start + timedelta(days=365),
        rent_amount=rent,
        deposit_amount=rent,
        payment_due_day=due_day,
        terms="Tenant keeps the unit clean.",
        status=status,
    )
    if status == "active":
        lease.landlord_signed = True
        lease.tenant_signed = True
        prop.occupy(tenant.id)
    db.session.add(lease)
    db.session.commit()
    return lease


def make_payment(prop, tenant, due=None, status="pending", amount=1200.0, lease=None):
    payment = Payment(
        property_id=prop.id,
        tenant_id=tenant.id,
        landlord_id=prop.landlord_id,
        lease_id=lease.id if lease else None,
        amount=amount,
        type="rent",
        due_date=due or date.today(),
        status=status,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def auth_headers(user):
    token = AuthHelper().generate_tokens(user)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def landlord():
    return make_user("landlord", name="Lena Landlord", email="lena@example.com")


@pytest.fixture
def tenant():
    return make_user("tenant", name="Tom Tenant", email="tom@example.com", phone="+15550100")


@pytest.fixture
def manager():
    return make_user("manager", name="Mia Manager", email="mia@example.com")


@pytest.fixture
def outsider():
    return make_user("landlord", name="Oscar Other", email="oscar@example.com")


@pytest.fixture
def prop(landlord):
    return make_property(landlord)
