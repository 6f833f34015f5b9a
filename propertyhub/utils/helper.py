import os
import time
import uuid
from datetime import date, datetime
from functools import wraps
from flask import current_app, jsonify
from flask_jwt_extended import create_access_token, create_refresh_token, get_jwt, get_jwt_identity
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.security import generate_password_hash, check_password_hash
from werkzeug.utils import secure_filename
from twilio.rest import Client

from propertyhub.utils.token_blacklist import TokenBlacklist
from propertyhub.utils.errors import Conflict, Unauthenticated, ValidationFailed


class AuthHelper:

    def hash_password(self, password):
        if not password:
            raise ValueError("Password cannot be empty.")
        return generate_password_hash(password)

    def verify_password(self, password, hashed):
        if not password or not hashed:
            return False
        return check_password_hash(hashed, password)

    def generate_tokens(self, user):
        claims = {"role": user.role, "email": user.email, "name": user.name}
        identity = str(user.id)
        return {
            "access_token": create_access_token(identity=identity, additional_claims=claims),
            "refresh_token": create_refresh_token(identity=identity, additional_claims=claims),
        }

    def blacklist_token(self):
        """Blacklist the current JWT until it would have expired anyway."""
        payload = get_jwt()
        jti = payload.get("jti")
        exp = payload.get("exp")
        if not jti or not exp:
            raise ValueError("Invalid JWT structure.")

        expires_in = max(int(exp - time.time()), 1)
        TokenBlacklist().add(jti, expires_in)
        current_app.logger.info(f"Token blacklisted (jti={jti}). Expires in {expires_in}s.")


class TwilioHelper:
    """SMS delivery; a missing Twilio configuration turns every send into a no-op."""

    def __init__(self):
        config = current_app.config
        self.from_number = config.get("TWILIO_PHONE_NUMBER")
        self.client = None
        if config.get("TWILIO_ACCOUNT_SID") and config.get("TWILIO_AUTH_TOKEN") and self.from_number:
            self.client = Client(config["TWILIO_ACCOUNT_SID"], config["TWILIO_AUTH_TOKEN"])

    @property
    def enabled(self):
        return self.client is not None

    def send_sms(self, to, message):
        if not self.enabled:
            current_app.logger.info(f"SMS to {to} skipped - Twilio not configured")
            return None
        if not to or not message:
            raise ValueError("Recipient number and message cannot be empty.")
        response = self.client.messages.create(body=message, from_=self.from_number, to=to)
        current_app.logger.info(f"SMS sent to {to}, SID: {response.sid}")
        return response.sid


def log_notification(message, notification_type="Email", status="sent", user_id=None):
    """Record a delivery attempt; never lets a logging failure escape."""
    from propertyhub import db
    from propertyhub.models import NotificationLog

    try:
        db.session.add(NotificationLog(
            user_id=parse_uuid(user_id, "user id") if user_id else None,
            message=message,
            notification_type=notification_type,
            status=status,
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to log notification: {e}", exc_info=True)


def save_upload(file_storage, area):
    """
    Persist an uploaded file under ``UPLOAD_FOLDER/<area>`` and return its path.

    Only the configured MIME types are accepted.
    """
    allowed = current_app.config.get("ALLOWED_FILE_TYPES", [])
    if file_storage.mimetype not in allowed:
        raise ValidationFailed("Invalid file type. Only JPEG, PNG, and PDF files are allowed.")

    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], area)
    os.makedirs(folder, exist_ok=True)

    original = secure_filename(file_storage.filename or "") or "upload"
    _, ext = os.path.splitext(original)
    filename = f"{file_storage.name or 'file'}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
    path = os.path.join(folder, filename)
    file_storage.save(path)
    return path


def commit_or_conflict(message="This record was changed by another request. Please reload and try again."):
    """Commit the session; a lost optimistic-lock race surfaces as :class:`Conflict`."""
    from propertyhub import db

    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise Conflict(message)


def dispatch(task, *args, **kwargs):
    """Queue a side effect. A broker failure is logged and never reaches the caller."""
    try:
        return task.delay(*args, **kwargs)
    except Exception as e:
        current_app.logger.error(f"Failed to queue {task.name}: {e}", exc_info=True)
        return None


def parse_uuid(value, label="id"):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {label}")


def parse_date(value, label="date"):
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp and return a ``date``."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {label}")


def current_user():
    """The active user behind the request's JWT."""
    from propertyhub import db
    from propertyhub.models import User

    identity = get_jwt_identity()
    try:
        user_id = uuid.UUID(str(identity))
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token identity")

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive")
    return user


def roles_required(*roles):
    """Reject callers whose role claim is not one of ``roles`` with a 403."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            role = get_jwt().get("role")
            if role not in roles:
                current_app.logger.warning(f"Role '{role}' rejected for {fn.__name__}")
                return jsonify({
                    "success": False,
                    "message": f"User role '{role}' is not authorized to access this route",
                }), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
