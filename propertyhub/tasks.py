from propertyhub import celery, mail, db
from propertyhub.models import DailyTaskLog, Lease, Payment, MaintenanceRequest, User
from flask import current_app
from flask_mail import Message
from datetime import date
from sqlalchemy.exc import IntegrityError

from propertyhub.utils.helper import TwilioHelper, log_notification, parse_uuid
from propertyhub.utils.documents import generate_lease_document, generate_payment_receipt
from propertyhub.utils.billing import run_generation_tick, run_overdue_sweep
from propertyhub.utils.leasing import auto_expire_leases


def claim_daily_run(task_name, today=None):
    """
    Record today's run of ``task_name`` before doing any work.

    Returns False when the task already ran (or is running) today; the
    unique constraint on (task_name, run_date) settles concurrent claims.
    """
    today = today or date.today()
    if DailyTaskLog.query.filter_by(task_name=task_name, run_date=today).first():
        current_app.logger.info(f"{task_name} already executed today. Skipping.")
        return False

    db.session.add(DailyTaskLog(task_name=task_name, run_date=today))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"{task_name} claimed by another worker. Skipping.")
        return False
    return True


@celery.task(name="propertyhub.tasks.send_email_task")
def send_email_task(subject, recipients, body, user_id=None):
    """Send email and log notification."""
    try:
        msg = Message(subject, recipients=recipients, body=body)
        mail.send(msg)
        current_app.logger.info(f"Email sent to {recipients}")
        log_notification(body, notification_type="Email", status="sent", user_id=user_id)
    except Exception as e:
        current_app.logger.error(f"Failed to send email to {recipients}: {e}", exc_info=True)
        log_notification(body, notification_type="Email", status="failed", user_id=user_id)


@celery.task(name="propertyhub.tasks.send_sms_task")
def send_sms_task(to, message, user_id=None):
    twilio = TwilioHelper()
    if not twilio.enabled:
        log_notification(message, notification_type="SMS", status="skipped", user_id=user_id)
        return None
    try:
        sid = twilio.send_sms(to, message)
        log_notification(message, notification_type="SMS", status="sent", user_id=user_id)
        return sid
    except Exception as e:
        current_app.logger.error(f"Failed to send SMS to {to}: {e}", exc_info=True)
        log_notification(message, notification_type="SMS", status="failed", user_id=user_id)
        return None


@celery.task(name="propertyhub.tasks.generate_lease_document_task")
def generate_lease_document_task(lease_id):
    """Render the signed agreement and store its path on the lease."""
    try:
        lease = db.session.get(Lease, parse_uuid(lease_id))
        if not lease:
            current_app.logger.warning(f"Skipping lease document - lease {lease_id} not found.")
            return None
        path = generate_lease_document(lease, lease.landlord, lease.tenant, lease.property)
        # Written outside the versioned flush; the lease version only tracks state changes
        Lease.query.filter_by(id=lease.id).update({"document": path}, synchronize_session=False)
        db.session.commit()
        current_app.logger.info(f"Lease document generated for lease {lease_id}")
        return path
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Lease document generation error for {lease_id}: {e}", exc_info=True)
        return None


@celery.task(name="propertyhub.tasks.generate_payment_receipt_task")
def generate_payment_receipt_task(payment_id):
    try:
        payment = db.session.get(Payment, parse_uuid(payment_id))
        if not payment or payment.status != "paid":
            current_app.logger.warning(f"Skipping receipt - payment {payment_id} missing or unpaid.")
            return None
        path = generate_payment_receipt(payment, payment.tenant, payment.landlord, payment.property)
        Payment.query.filter_by(id=payment.id).update({"receipt_url": path}, synchronize_session=False)
        db.session.commit()
        current_app.logger.info(f"Receipt generated for payment {payment_id}")
        return path
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Receipt generation error for {payment_id}: {e}", exc_info=True)
        return None


@celery.task(name="propertyhub.tasks.send_payment_receipt_task")
def send_payment_receipt_task(payment_id):
    """E-mail (and text, when Twilio is configured) the tenant a payment confirmation."""
    payment = db.session.get(Payment, parse_uuid(payment_id))
    if not payment:
        current_app.logger.warning(f"Skipping receipt email - payment {payment_id} not found.")
        return
    tenant = payment.tenant
    prop = payment.property

    body = (
        f"Hello {tenant.name},\n\n"
        f"We received your payment of {payment.amount:,.2f} for {prop.name}.\n"
        f"Receipt number: {payment.receipt_number}\n"
        f"Transaction ID: {payment.transaction_id or 'N/A'}\n"
        f"Paid on: {payment.paid_date.strftime('%d %b %Y') if payment.paid_date else '-'}\n\n"
        f"Thanks!"
    )
    if tenant.email:
        send_email_task.delay("Payment Receipt", [tenant.email], body, user_id=str(tenant.id))
    if tenant.phone:
        send_sms_task.delay(
            tenant.phone,
            f"PropertyHub: payment of {payment.amount:,.2f} received. Receipt {payment.receipt_number}.",
            user_id=str(tenant.id),
        )


@celery.task(name="propertyhub.tasks.notify_maintenance_request_task")
def notify_maintenance_request_task(request_id):
    """Tell the landlord about a new maintenance request."""
    request_ = db.session.get(MaintenanceRequest, parse_uuid(request_id))
    if not request_:
        current_app.logger.warning(f"Skipping maintenance notification - request {request_id} not found.")
        return
    landlord = request_.landlord
    tenant = request_.tenant
    prop = request_.property

    body = (
        f"Hello {landlord.name},\n\n"
        f"{tenant.name} submitted a maintenance request for {prop.name}.\n\n"
        f"Title: {request_.title}\n"
        f"Category: {request_.category}\n"
        f"Priority: {request_.priority}\n\n"
        f"{request_.description}\n"
    )
    if landlord.email:
        send_email_task.delay(
            f"New Maintenance Request: {request_.title}", [landlord.email], body, user_id=str(landlord.id)
        )
    if request_.priority == "urgent" and landlord.phone:
        send_sms_task.delay(
            landlord.phone,
            f"PropertyHub: URGENT maintenance request at {prop.name}: {request_.title}",
            user_id=str(landlord.id),
        )


@celery.task(name="propertyhub.tasks.send_welcome_email_task")
def send_welcome_email_task(user_id):
    user = db.session.get(User, parse_uuid(user_id))
    if not user:
        return
    body = (
        f"Hello {user.name},\n\n"
        f"Welcome to PropertyHub! Your {user.role} account is ready.\n\nThanks!"
    )
    send_email_task.delay("Welcome to PropertyHub!", [user.email], body, user_id=str(user.id))


@celery.task(name="propertyhub.tasks.generate_monthly_payments_task")
def generate_monthly_payments_task():
    """Create today's rent payments once per day."""
    today = date.today()
    if not claim_daily_run("generate_monthly_payments", today):
        return "Already ran today"
    return run_generation_tick(today)


@celery.task(name="propertyhub.tasks.update_overdue_payments_task")
def update_overdue_payments_task():
    """Mark pending payments as overdue once their due date has passed."""
    today = date.today()
    if not claim_daily_run("update_overdue_payments", today):
        return "Already ran today"
    return run_overdue_sweep(today)


@celery.task(name="propertyhub.tasks.auto_expire_leases_task")
def auto_expire_leases_task():
    """Set lease status to 'expired' once end_date has passed."""
    today = date.today()
    if not claim_daily_run("auto_expire_leases", today):
        return "Already ran today"
    try:
        expired = auto_expire_leases(today)
        current_app.logger.info(f"{expired} leases updated to 'expired'.")
        return expired
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating expired leases: {e}", exc_info=True)
        return 0
