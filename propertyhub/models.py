from propertyhub import db
from datetime import datetime, date, timedelta
from sqlalchemy import Uuid
import uuid


class TimeStamp:
    created_date = db.Column(db.DateTime, default=datetime.now)
    updated_date = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)


def _iso(value):
    return value.isoformat() if value else None


def _id(value):
    return str(value) if value else None


# ---------------------------
# User (landlord / tenant / manager)
# ---------------------------
class User(db.Model, TimeStamp):
    __tablename__ = "users"

    ROLES = ("landlord", "tenant", "manager")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20))
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="tenant")
    avatar = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "id": _id(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "avatar": self.avatar,
        }


def _brief(user):
    if not user:
        return None
    return {"id": _id(user.id), "name": user.name, "email": user.email, "phone": user.phone}


# ---------------------------
# Property
# ---------------------------
class Property(db.Model, TimeStamp):
    __tablename__ = "properties"

    STATUSES = ("available", "occupied", "maintenance")
    TYPES = ("apartment", "house", "condo", "townhouse", "other")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    landlord_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    current_tenant_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=True, index=True)
    assigned_manager_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=True, index=True)

    name = db.Column(db.String(120), nullable=False)
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(60), default="USA")
    type = db.Column(db.String(20), default="apartment")
    description = db.Column(db.Text)
    bedrooms = db.Column(db.Integer, nullable=False, default=0)
    bathrooms = db.Column(db.Float, nullable=False, default=0)
    square_feet = db.Column(db.Integer)
    year_built = db.Column(db.Integer)
    rent_amount = db.Column(db.Float, nullable=False)
    deposit_amount = db.Column(db.Float, default=0.0)
    images = db.Column(db.JSON, default=list)
    amenities = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default="available")
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    landlord = db.relationship("User", foreign_keys=[landlord_id])
    current_tenant = db.relationship("User", foreign_keys=[current_tenant_id])
    assigned_manager = db.relationship("User", foreign_keys=[assigned_manager_id])

    leases = db.relationship("Lease", backref="property", lazy=True, cascade="all, delete-orphan")
    payments = db.relationship("Payment", backref="property", lazy=True, cascade="all, delete-orphan")
    maintenance_requests = db.relationship(
        "MaintenanceRequest", backref="property", lazy=True, cascade="all, delete-orphan"
    )

    def occupy(self, tenant_id):
        self.current_tenant_id = tenant_id
        self.status = "occupied"
        self.is_available = False

    def vacate(self):
        self.current_tenant_id = None
        self.status = "available"
        self.is_available = True

    def to_dict(self):
        return {
            "id": _id(self.id),
            "name": self.name,
            "address": {
                "street": self.street,
                "city": self.city,
                "state": self.state,
                "zip_code": self.zip_code,
                "country": self.country,
            },
            "type": self.type,
            "description": self.description,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "square_feet": self.square_feet,
            "year_built": self.year_built,
            "rent_amount": self.rent_amount,
            "deposit_amount": self.deposit_amount,
            "images": self.images or [],
            "amenities": self.amenities or [],
            "status": self.status,
            "is_available": self.is_available,
            "landlord": _brief(self.landlord),
            "current_tenant": _brief(self.current_tenant),
            "assigned_manager": _brief(self.assigned_manager),
            "created_date": _iso(self.created_date),
            "updated_date": _iso(self.updated_date),
        }


# ---------------------------
# Lease (landlord <-> tenant agreement on a property)
# ---------------------------
class Lease(db.Model, TimeStamp):
    __tablename__ = "leases"

    STATUSES = ("draft", "pending", "active", "expired", "terminated")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("properties.id"), nullable=False, index=True)
    landlord_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    rent_amount = db.Column(db.Float, nullable=False)
    deposit_amount = db.Column(db.Float, default=0.0)
    payment_due_day = db.Column(db.Integer, nullable=False, default=1)
    terms = db.Column(db.Text, nullable=False)
    document = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    landlord_signed = db.Column(db.Boolean, nullable=False, default=False)
    landlord_signature_data = db.Column(db.Text)
    landlord_signed_at = db.Column(db.DateTime)
    landlord_ip_address = db.Column(db.String(64))
    tenant_signed = db.Column(db.Boolean, nullable=False, default=False)
    tenant_signature_data = db.Column(db.Text)
    tenant_signed_at = db.Column(db.DateTime)
    tenant_ip_address = db.Column(db.String(64))

    renewal_reminder_sent = db.Column(db.Boolean, default=False)
    renewal_reminder_sent_at = db.Column(db.DateTime)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    landlord = db.relationship("User", foreign_keys=[landlord_id])
    tenant = db.relationship("User", foreign_keys=[tenant_id])

    @property
    def is_fully_signed(self):
        return bool(self.landlord_signed and self.tenant_signed)

    def is_expiring_soon(self, today=None):
        today = today or date.today()
        days_left = (self.end_date - today).days
        return 0 < days_left <= 60

    def has_signed(self, party):
        return bool(getattr(self, f"{party}_signed"))

    def record_signature(self, party, signature_data, ip_address, signed_at=None):
        setattr(self, f"{party}_signed", True)
        setattr(self, f"{party}_signature_data", signature_data)
        setattr(self, f"{party}_signed_at", signed_at or datetime.now())
        setattr(self, f"{party}_ip_address", ip_address)

    def _signature(self, party):
        signed_at = getattr(self, f"{party}_signed_at")
        return {
            "signed": bool(getattr(self, f"{party}_signed")),
            "signed_at": _iso(signed_at),
            "ip_address": getattr(self, f"{party}_ip_address"),
        }

    def to_dict(self):
        return {
            "id": _id(self.id),
            "property": {
                "id": _id(self.property_id),
                "name": self.property.name if self.property else None,
            },
            "landlord": _brief(self.landlord),
            "tenant": _brief(self.tenant),
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "rent_amount": self.rent_amount,
            "deposit_amount": self.deposit_amount,
            "payment_due_day": self.payment_due_day,
            "terms": self.terms,
            "document": self.document,
            "status": self.status,
            "signatures": {
                "landlord": self._signature("landlord"),
                "tenant": self._signature("tenant"),
            },
            "is_fully_signed": self.is_fully_signed,
            "created_date": _iso(self.created_date),
            "updated_date": _iso(self.updated_date),
        }


# ---------------------------
# Payment
# ---------------------------
class Payment(db.Model, TimeStamp):
    __tablename__ = "payments"

    STATUSES = ("pending", "processing", "paid", "failed", "overdue", "refunded")
    TYPES = ("rent", "deposit", "late_fee", "maintenance", "other")
    METHODS = ("demo_card", "cash", "check", "bank_transfer", "other")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("properties.id"), nullable=False, index=True)
    lease_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("leases.id"), nullable=True, index=True)
    tenant_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    landlord_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="rent")
    description = db.Column(db.String(255))
    due_date = db.Column(db.Date, nullable=False, index=True)
    paid_date = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(20), default="demo_card")

    card_last4 = db.Column(db.String(4))
    card_brand = db.Column(db.String(20))
    transaction_id = db.Column(db.String(64))
    processing_time = db.Column(db.Integer)

    receipt_url = db.Column(db.String(255))
    receipt_number = db.Column(db.String(20), unique=True)
    notes = db.Column(db.Text)
    late_fee_amount = db.Column(db.Float, default=0.0)
    late_fee_applied = db.Column(db.Boolean, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    lease = db.relationship("Lease", backref=db.backref("payments", lazy=True))
    tenant = db.relationship("User", foreign_keys=[tenant_id])
    landlord = db.relationship("User", foreign_keys=[landlord_id])

    def is_overdue(self, today=None):
        if self.status == "paid":
            return False
        return (today or date.today()) > self.due_date

    def to_dict(self):
        demo_payment = None
        if self.transaction_id:
            demo_payment = {
                "card_last4": self.card_last4,
                "card_brand": self.card_brand,
                "transaction_id": self.transaction_id,
                "processing_time": self.processing_time,
            }
        return {
            "id": _id(self.id),
            "property": {
                "id": _id(self.property_id),
                "name": self.property.name if self.property else None,
            },
            "lease_id": _id(self.lease_id),
            "tenant": _brief(self.tenant),
            "landlord": _brief(self.landlord),
            "amount": self.amount,
            "type": self.type,
            "description": self.description,
            "due_date": _iso(self.due_date),
            "paid_date": _iso(self.paid_date),
            "status": self.status,
            "payment_method": self.payment_method,
            "demo_payment": demo_payment,
            "receipt_number": self.receipt_number,
            "receipt_url": self.receipt_url,
            "notes": self.notes,
            "late_fee": {"amount": self.late_fee_amount, "applied": self.late_fee_applied},
            "created_date": _iso(self.created_date),
        }


# ---------------------------
# Maintenance requests
# ---------------------------
class MaintenanceRequest(db.Model, TimeStamp):
    __tablename__ = "maintenance_requests"

    CATEGORIES = ("plumbing", "electrical", "hvac", "appliance", "structural", "pest", "other")
    PRIORITIES = ("low", "medium", "high", "urgent")
    STATUSES = ("open", "in_progress", "on_hold", "resolved", "closed")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("properties.id"), nullable=False, index=True)
    tenant_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    landlord_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=True, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20), default="other")
    priority = db.Column(db.String(20), default="medium")
    status = db.Column(db.String(20), default="open")
    images = db.Column(db.JSON, default=list)
    estimated_cost = db.Column(db.Float)
    actual_cost = db.Column(db.Float)
    scheduled_date = db.Column(db.Date)
    completed_date = db.Column(db.DateTime)
    is_urgent = db.Column(db.Boolean, default=False)

    tenant = db.relationship("User", foreign_keys=[tenant_id])
    landlord = db.relationship("User", foreign_keys=[landlord_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    comments = db.relationship(
        "MaintenanceComment", backref="request", lazy=True,
        cascade="all, delete-orphan", order_by="MaintenanceComment.created_date",
    )

    def to_dict(self):
        return {
            "id": _id(self.id),
            "property": {
                "id": _id(self.property_id),
                "name": self.property.name if self.property else None,
            },
            "tenant": _brief(self.tenant),
            "landlord": _brief(self.landlord),
            "assigned_to": _brief(self.assigned_to),
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "images": self.images or [],
            "estimated_cost": self.estimated_cost,
            "actual_cost": self.actual_cost,
            "scheduled_date": _iso(self.scheduled_date),
            "completed_date": _iso(self.completed_date),
            "is_urgent": self.is_urgent,
            "comments": [c.to_dict() for c in self.comments],
            "created_date": _iso(self.created_date),
        }


class MaintenanceComment(db.Model, TimeStamp):
    __tablename__ = "maintenance_comments"

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("maintenance_requests.id"), nullable=False)
    user_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False)
    text = db.Column(db.Text, nullable=False)

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": _id(self.id),
            "user": {"id": _id(self.user_id), "name": self.user.name if self.user else None},
            "text": self.text,
            "created_date": _iso(self.created_date),
        }


# ---------------------------
# Messaging
# ---------------------------
message_recipients = db.Table(
    "message_recipients",
    db.Column("message_id", Uuid(as_uuid=True), db.ForeignKey("messages.id"), primary_key=True),
    db.Column("user_id", Uuid(as_uuid=True), db.ForeignKey("users.id"), primary_key=True),
)


class Message(db.Model, TimeStamp):
    __tablename__ = "messages"

    RELATED_TO = ("general", "maintenance", "payment", "lease", "property")

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation = db.Column(db.String(255), nullable=False, index=True)
    sender_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False, index=True)
    subject = db.Column(db.String(255))
    content = db.Column(db.Text, nullable=False, default="")
    property_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("properties.id"), nullable=True)
    attachments = db.Column(db.JSON, default=list)
    type = db.Column(db.String(20), default="direct")
    related_to = db.Column(db.String(20), default="general")
    related_id = db.Column(db.String(64))

    sender = db.relationship("User", foreign_keys=[sender_id])
    recipients = db.relationship("User", secondary=message_recipients, lazy="subquery")
    reads = db.relationship("MessageRead", backref="message", lazy=True, cascade="all, delete-orphan")

    @staticmethod
    def conversation_key(user_ids):
        return "-".join(sorted(str(u) for u in user_ids))

    def is_read_by(self, user_id):
        return any(str(r.user_id) == str(user_id) for r in self.reads)

    def to_dict(self):
        return {
            "id": _id(self.id),
            "conversation": self.conversation,
            "sender": _brief(self.sender),
            "recipients": [_brief(r) for r in self.recipients],
            "subject": self.subject,
            "content": self.content,
            "property_id": _id(self.property_id),
            "attachments": self.attachments or [],
            "type": self.type,
            "related_to": self.related_to,
            "related_id": self.related_id,
            "read_by": [_id(r.user_id) for r in self.reads],
            "created_date": _iso(self.created_date),
        }


class MessageRead(db.Model):
    __tablename__ = "message_reads"

    message_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("messages.id"), primary_key=True)
    user_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), primary_key=True)
    read_at = db.Column(db.DateTime, default=datetime.now)


# ---------------------------
# Notification Log
# ---------------------------
class NotificationLog(db.Model, TimeStamp):
    __tablename__ = "notification_logs"

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=True)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(db.String(50), default="Email")
    status = db.Column(db.String(50), default="pending")  # sent, failed, skipped


# ---------------------------
# Tasks Log
# ---------------------------
class DailyTaskLog(db.Model):
    __tablename__ = "daily_task_log"
    __table_args__ = (db.UniqueConstraint("task_name", "run_date", name="uq_daily_task_run"),)

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_name = db.Column(db.String(100), nullable=False)
    run_date = db.Column(db.Date, nullable=False, default=date.today)


class PasswordResetToken(db.Model, TimeStamp):
    __tablename__ = "password_reset_tokens"

    id = db.Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(Uuid(as_uuid=True), db.ForeignKey("users.id"), nullable=False)
    token = db.Column(db.String(100), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    @classmethod
    def issue(cls, user_id, token, hours=1):
        return cls(user_id=user_id, token=token, expires_at=datetime.utcnow() + timedelta(hours=hours))

    def is_expired(self):
        return datetime.utcnow() > self.expires_at
