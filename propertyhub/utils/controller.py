from propertyhub.models import (
    User, PasswordResetToken, Property, MaintenanceRequest, MaintenanceComment,
    Message, MessageRead, message_recipients,
)
from propertyhub.utils.helper import (
    AuthHelper, current_user, dispatch, parse_date, parse_uuid, save_upload,
)
from propertyhub.utils.errors import PropertyHubError, NotFound, ValidationFailed, Conflict
from propertyhub.utils import policy, leasing, payments, billing
from propertyhub.tasks import (
    send_email_task, send_welcome_email_task, notify_maintenance_request_task,
)
from propertyhub import db
from flask import request, jsonify, url_for, current_app, send_file
from flask_jwt_extended import create_access_token
from sqlalchemy import func, or_
from datetime import datetime, date
import secrets, re

EMAIL_REGEX = r"^[\w\.\+-]+@[\w\.-]+\.\w+$"


def _request_data():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data


def _fail(e):
    """Envelope for a business-rule failure raised by the core."""
    db.session.rollback()
    return jsonify(e.to_response()), e.status_code


def _server_error(message, e):
    db.session.rollback()
    current_app.logger.error(f"{message}: {e}", exc_info=True)
    return jsonify({"success": False, "message": message}), 500


def _saved_uploads(field, area):
    return [save_upload(f, area) for f in request.files.getlist(field) if f and f.filename]


def _saved_upload(field, area):
    uploads = _saved_uploads(field, area)
    return uploads[0] if uploads else None


class AuthController:

    def __init__(self):
        self.auth_helper = AuthHelper()
        self.data = _request_data()

    def register(self):
        try:
            name = (self.data.get("name") or "").strip()
            email = (self.data.get("email") or "").strip().lower()
            phone = (self.data.get("phone") or "").strip() or None
            password = self.data.get("password") or ""
            role = self.data.get("role") or "tenant"

            # --- Validation ---
            if not name or not email or not password:
                current_app.logger.warning("Registration failed: missing required fields")
                return jsonify({"success": False, "message": "Name, email and password are required"}), 400

            if not re.match(EMAIL_REGEX, email):
                return jsonify({"success": False, "message": "Valid email is required"}), 400

            if len(password) < 6:
                return jsonify({"success": False, "message": "Password must be at least 6 characters"}), 400

            if role not in User.ROLES:
                return jsonify({"success": False, "message": "Invalid role"}), 400

            if User.query.filter_by(email=email).first():
                return jsonify({"success": False, "message": "User already exists with this email"}), 400

            # --- Create new user ---
            user = User(
                name=name,
                email=email,
                phone=phone,
                password=self.auth_helper.hash_password(password),
                role=role,
            )
            db.session.add(user)
            db.session.commit()
            current_app.logger.info(f"New user registered: {name} ({email}) as {role}")

            dispatch(send_welcome_email_task, str(user.id))

            tokens = self.auth_helper.generate_tokens(user)
            return jsonify({"success": True, **tokens, "user": user.to_dict()}), 201

        except Exception as e:
            return _server_error("Registration failed", e)

    def login(self):
        try:
            email = (self.data.get("email") or "").strip().lower()
            password = self.data.get("password") or ""

            if not email or not password:
                return jsonify({"success": False, "message": "Please provide email and password"}), 400

            user = User.query.filter_by(email=email).first()
            if not user:
                return jsonify({"success": False, "message": "Invalid credentials"}), 401

            if not user.is_active:
                return jsonify({"success": False, "message": "Account is deactivated"}), 401

            if not self.auth_helper.verify_password(password, user.password):
                return jsonify({"success": False, "message": "Invalid credentials"}), 401

            user.last_login = datetime.now()
            db.session.commit()

            tokens = self.auth_helper.generate_tokens(user)
            return jsonify({"success": True, **tokens, "user": user.to_dict()}), 200

        except Exception as e:
            return _server_error("Login failed", e)

    def refresh(self):
        try:
            user = current_user()
            claims = {"role": user.role, "email": user.email, "name": user.name}
            token = create_access_token(identity=str(user.id), additional_claims=claims)
            return jsonify({"success": True, "access_token": token}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Token refresh failed", e)

    def logout(self):
        try:
            self.auth_helper.blacklist_token()
            return jsonify({"success": True, "message": "Access token revoked"}), 200
        except Exception as e:
            return _server_error("Logout failed", e)

    def me(self):
        try:
            user = current_user()
            return jsonify({"success": True, "user": user.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch user", e)

    def list_users(self):
        try:
            role = request.args.get("role")
            search = (request.args.get("search") or "").strip()

            query = User.query.filter(User.is_active.is_(True))
            if role:
                query = query.filter(User.role == role)
            if search:
                like_pattern = f"%{search}%"
                query = query.filter(or_(User.name.ilike(like_pattern), User.email.ilike(like_pattern)))

            users = query.order_by(User.name.asc()).all()
            return jsonify({"success": True, "count": len(users), "users": [u.to_dict() for u in users]}), 200
        except Exception as e:
            return _server_error("Failed to fetch users", e)

    def forgot_password(self):
        try:
            email = (self.data.get("email") or "").strip().lower()

            if not email:
                return jsonify({"success": False, "message": "Email is required"}), 400
            if not re.match(EMAIL_REGEX, email):
                return jsonify({"success": False, "message": "Invalid email format"}), 400

            user = User.query.filter_by(email=email).first()
            if user:
                token = secrets.token_urlsafe(32)
                db.session.add(PasswordResetToken.issue(user.id, token))
                db.session.commit()

                reset_link = url_for("api.reset_password", token=token, _external=True)
                dispatch(
                    send_email_task,
                    "Password Reset Request",
                    [email],
                    f"Click the link to reset your password: {reset_link}",
                    user_id=str(user.id),
                )

            # Always return generic success (even if user not found)
            return jsonify({"success": True, "message": "If this email exists, a reset link has been sent"}), 200

        except Exception as e:
            return _server_error("Forgot password failed", e)

    def reset_password(self, token):
        try:
            password = self.data.get("password") or ""
            if len(password) < 6:
                return jsonify({"success": False, "message": "Password must be at least 6 characters"}), 400

            reset_token = PasswordResetToken.query.filter_by(token=token).first()
            if not reset_token or reset_token.is_expired():
                return jsonify({"success": False, "message": "Invalid or expired token"}), 400

            user = db.session.get(User, reset_token.user_id)
            if not user:
                return jsonify({"success": False, "message": "User not found"}), 404

            user.password = self.auth_helper.hash_password(password)
            db.session.delete(reset_token)
            db.session.commit()

            return jsonify({"success": True, "message": "Password has been reset successfully"}), 200

        except Exception as e:
            return _server_error("Reset password failed", e)


class ProfileController:

    def __init__(self):
        self.data = _request_data()

    def get_profile(self):
        try:
            user = current_user()
            profile = user.to_dict()
            profile["last_login"] = user.last_login.isoformat() if user.last_login else None
            profile["created_date"] = user.created_date.isoformat() if user.created_date else None
            return jsonify({"success": True, "user": profile}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch profile", e)

    def update_profile(self):
        try:
            user = current_user()

            email = (self.data.get("email") or "").strip().lower()
            if email and email != user.email:
                if not re.match(EMAIL_REGEX, email):
                    return jsonify({"success": False, "message": "Invalid email format"}), 400
                if User.query.filter(User.email == email, User.id != user.id).first():
                    return jsonify({"success": False, "message": "Email already in use"}), 400
                user.email = email

            if self.data.get("name"):
                user.name = self.data["name"].strip()
            if "phone" in self.data:
                user.phone = (self.data.get("phone") or "").strip() or None

            avatar = request.files.get("avatar")
            if avatar and avatar.filename:
                user.avatar = save_upload(avatar, "avatars")

            db.session.commit()
            return jsonify({"success": True, "user": user.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to update profile", e)

    def change_password(self):
        try:
            auth_helper = AuthHelper()
            current_password = self.data.get("current_password")
            new_password = self.data.get("new_password")

            if not current_password or not new_password:
                return jsonify({"success": False, "message": "Current and new password are required"}), 400
            if len(new_password) < 6:
                return jsonify({"success": False, "message": "Password must be at least 6 characters"}), 400

            user = current_user()
            if not auth_helper.verify_password(current_password, user.password):
                return jsonify({"success": False, "message": "Current password is incorrect"}), 401

            user.password = auth_helper.hash_password(new_password)
            db.session.commit()

            return jsonify({"success": True, "message": "Password changed successfully"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to change password", e)


class PropertyController:

    ADDRESS_FIELDS = ("street", "city", "state", "zip_code", "country")
    UPDATABLE_FIELDS = (
        "name", "type", "description", "bedrooms", "bathrooms", "square_feet",
        "year_built", "rent_amount", "deposit_amount", "amenities",
    )

    def __init__(self):
        self.data = _request_data()

    def _get(self, property_id):
        prop = db.session.get(Property, parse_uuid(property_id, "property id"))
        if not prop:
            raise NotFound("Property not found")
        return prop

    def _address(self):
        address = self.data.get("address")
        if isinstance(address, dict):
            return address
        return {f: self.data.get(f) for f in self.ADDRESS_FIELDS if self.data.get(f) is not None}

    def _amenities(self, value):
        if isinstance(value, str):
            return [a.strip() for a in value.split(",") if a.strip()]
        return list(value or [])

    def get_all_properties(self):
        try:
            user = current_user()
            page = int(request.args.get("page", 1))
            per_page = int(request.args.get("per_page", 10))
            search = (request.args.get("search") or "").strip()
            status_filter = request.args.get("status")
            type_filter = request.args.get("type")

            query = Property.query
            if user.role == "landlord":
                query = query.filter(Property.landlord_id == user.id)
            elif user.role == "tenant":
                query = query.filter(Property.current_tenant_id == user.id)
            else:
                query = query.filter(Property.assigned_manager_id == user.id)

            if status_filter:
                query = query.filter(Property.status == status_filter)
            if type_filter:
                query = query.filter(Property.type == type_filter)
            if search:
                like_pattern = f"%{search}%"
                query = query.filter(
                    (Property.name.ilike(like_pattern)) |
                    (Property.city.ilike(like_pattern)) |
                    (Property.state.ilike(like_pattern))
                )

            pagination = query.order_by(Property.created_date.desc()).paginate(
                page=page, per_page=per_page, error_out=False
            )
            return jsonify({
                "success": True,
                "properties": [p.to_dict() for p in pagination.items],
                "total": pagination.total,
                "page": pagination.page,
                "pages": pagination.pages,
                "per_page": pagination.per_page,
            }), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch properties", e)

    def get_property(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_can_view_property(user, prop)
            return jsonify({"success": True, "property": prop.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch property", e)

    def add_property(self):
        try:
            user = current_user()
            address = self._address()

            required_fields = ["name", "rent_amount"]
            missing = [f for f in required_fields if self.data.get(f) in (None, "")]
            missing += [f"address.{f}" for f in ("street", "city", "state", "zip_code") if not address.get(f)]
            if missing:
                return jsonify({"success": False, "message": f"Missing required fields: {', '.join(missing)}"}), 400

            prop_type = self.data.get("type") or "apartment"
            if prop_type not in Property.TYPES:
                return jsonify({"success": False, "message": "Invalid property type"}), 400

            rent_amount = float(self.data.get("rent_amount"))
            if rent_amount < 0:
                return jsonify({"success": False, "message": "Rent amount must be a positive number"}), 400

            new_property = Property(
                landlord_id=user.id,
                name=self.data.get("name"),
                street=address.get("street"),
                city=address.get("city"),
                state=address.get("state"),
                zip_code=address.get("zip_code"),
                country=address.get("country") or "USA",
                type=prop_type,
                description=self.data.get("description"),
                bedrooms=int(self.data.get("bedrooms") or 0),
                bathrooms=float(self.data.get("bathrooms") or 0),
                square_feet=int(self.data["square_feet"]) if self.data.get("square_feet") else None,
                year_built=int(self.data["year_built"]) if self.data.get("year_built") else None,
                rent_amount=rent_amount,
                deposit_amount=float(self.data.get("deposit_amount") or 0),
                amenities=self._amenities(self.data.get("amenities")),
                images=_saved_uploads("images", "properties"),
                status="available",
                is_available=True,
            )
            db.session.add(new_property)
            db.session.commit()
            current_app.logger.info(f"Property {new_property.id} added by landlord {user.id}")

            return jsonify({"success": True, "property": new_property.to_dict()}), 201

        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({"success": False, "message": f"Invalid numeric field: {e}"}), 400
        except Exception as e:
            return _server_error("Failed to add property", e)

    def update_property(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized to update this property")

            for field, value in self._address().items():
                if field in self.ADDRESS_FIELDS:
                    setattr(prop, field, value)

            for field in self.UPDATABLE_FIELDS:
                if field not in self.data:
                    continue
                value = self.data[field]
                if field == "type" and value not in Property.TYPES:
                    return jsonify({"success": False, "message": "Invalid property type"}), 400
                if field in ("rent_amount", "deposit_amount", "bathrooms"):
                    value = float(value)
                elif field in ("bedrooms", "square_feet", "year_built"):
                    value = int(value) if value not in (None, "") else None
                elif field == "amenities":
                    value = self._amenities(value)
                setattr(prop, field, value)

            new_images = _saved_uploads("images", "properties")
            if new_images:
                prop.images = list(prop.images or []) + new_images

            db.session.commit()
            return jsonify({"success": True, "property": prop.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({"success": False, "message": f"Invalid numeric field: {e}"}), 400
        except Exception as e:
            return _server_error("Failed to update property", e)

    def delete_property(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized to delete this property")

            if prop.current_tenant_id:
                raise Conflict("Cannot delete property with current tenant. Please remove tenant first.")

            db.session.delete(prop)
            db.session.commit()
            current_app.logger.info(f"Property {property_id} deleted by landlord {user.id}")
            return jsonify({"success": True, "message": "Property deleted successfully"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to delete property", e)

    def assign_tenant(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized")

            tenant_id = self.data.get("tenant_id")
            tenant = db.session.get(User, parse_uuid(tenant_id, "tenant id")) if tenant_id else None
            if not tenant or tenant.role != "tenant":
                raise ValidationFailed("Invalid tenant")

            prop.occupy(tenant.id)
            db.session.commit()
            return jsonify({"success": True, "property": prop.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to assign tenant", e)

    def remove_tenant(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized")

            prop.vacate()
            db.session.commit()
            return jsonify({"success": True, "property": prop.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to remove tenant", e)

    def assign_manager(self, property_id):
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized")

            manager_id = self.data.get("manager_id")
            manager = db.session.get(User, parse_uuid(manager_id, "manager id")) if manager_id else None
            if not manager or manager.role != "manager":
                raise ValidationFailed("Invalid manager")

            prop.assigned_manager_id = manager.id
            db.session.commit()
            return jsonify({"success": True, "property": prop.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to assign manager", e)

    def update_status(self, property_id):
        """Landlords toggle a vacant property between available and maintenance."""
        try:
            user = current_user()
            prop = self._get(property_id)
            policy.ensure_property_owner(user, prop, "Not authorized")

            status = self.data.get("status")
            if status not in ("available", "maintenance"):
                raise ValidationFailed("Status must be 'available' or 'maintenance'")
            if prop.current_tenant_id:
                raise Conflict("Cannot change status of an occupied property")

            prop.status = status
            prop.is_available = status == "available"
            db.session.commit()
            return jsonify({"success": True, "property": prop.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to update property status", e)


class LeaseController:

    def __init__(self):
        self.data = _request_data()

    def get_all_leases(self):
        try:
            user = current_user()
            leases = leasing.list_leases(
                user,
                status=request.args.get("status"),
                property_id=request.args.get("property_id"),
            )
            return jsonify({"success": True, "count": len(leases), "leases": [l.to_dict() for l in leases]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch leases", e)

    def get_lease(self, lease_id):
        try:
            user = current_user()
            lease = leasing.get_lease(lease_id)
            policy.ensure_lease_party(user, lease)
            return jsonify({"success": True, "lease": lease.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch lease", e)

    def create_lease(self):
        try:
            user = current_user()
            lease = leasing.create_lease(user, self.data, document=_saved_upload("document", "leases"))
            return jsonify({"success": True, "lease": lease.to_dict()}), 201
        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({"success": False, "message": f"Invalid lease data: {e}"}), 400
        except Exception as e:
            return _server_error("Failed to create lease", e)

    def update_lease(self, lease_id):
        try:
            user = current_user()
            lease = leasing.get_lease(lease_id)
            lease = leasing.update_lease(lease, user, self.data, document=_saved_upload("document", "leases"))
            return jsonify({"success": True, "lease": lease.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({"success": False, "message": f"Invalid lease data: {e}"}), 400
        except Exception as e:
            return _server_error("Failed to update lease", e)

    def delete_lease(self, lease_id):
        try:
            user = current_user()
            leasing.delete_lease(leasing.get_lease(lease_id), user)
            return jsonify({"success": True, "message": "Lease deleted successfully"}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to delete lease", e)

    def sign_lease(self, lease_id):
        try:
            user = current_user()
            signature = self.data.get("signature") or self.data.get("signature_data")
            ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
            if ip_address:
                ip_address = ip_address.split(",")[0].strip()

            lease = leasing.sign_lease(leasing.get_lease(lease_id), user, signature, ip_address)
            return jsonify({
                "success": True,
                "message": "Lease fully signed and activated" if lease.status == "active" else "Lease signed",
                "lease": lease.to_dict(),
            }), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to sign lease", e)

    def terminate_lease(self, lease_id):
        try:
            user = current_user()
            lease = leasing.terminate_lease(leasing.get_lease(lease_id), user)
            return jsonify({"success": True, "message": "Lease terminated", "lease": lease.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to terminate lease", e)

    def expiring_leases(self):
        try:
            user = current_user()
            days = int(request.args.get("days", 60))
            leases = leasing.expiring_leases(user, days=days)
            return jsonify({"success": True, "count": len(leases), "leases": [l.to_dict() for l in leases]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except ValueError:
            return jsonify({"success": False, "message": "days must be a number"}), 400
        except Exception as e:
            return _server_error("Failed to fetch expiring leases", e)

    def download_document(self, lease_id):
        try:
            user = current_user()
            path = leasing.lease_document(leasing.get_lease(lease_id), user)
            return send_file(path, as_attachment=True, download_name=f"lease-{lease_id}.pdf")
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to download lease document", e)


class PaymentController:

    def __init__(self):
        self.data = _request_data()

    def get_all_payments(self):
        try:
            user = current_user()
            items = payments.list_payments(
                user,
                status=request.args.get("status"),
                property_id=request.args.get("property_id"),
                payment_type=request.args.get("type"),
            )
            return jsonify({"success": True, "count": len(items), "payments": [p.to_dict() for p in items]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch payments", e)

    def get_payment(self, payment_id):
        try:
            user = current_user()
            payment = payments.get_payment(payment_id)
            policy.ensure_payment_party(user, payment)
            return jsonify({"success": True, "payment": payment.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch payment", e)

    def create_payment(self):
        try:
            user = current_user()
            payment = payments.create_payment(user, self.data)
            return jsonify({"success": True, "payment": payment.to_dict()}), 201
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to create payment", e)

    def process_payment(self, payment_id):
        try:
            user = current_user()
            missing = [f for f in ("card_number", "expiry_month", "expiry_year", "cvv") if not self.data.get(f)]
            if missing:
                return jsonify({"success": False, "message": f"Missing required fields: {', '.join(missing)}"}), 400

            payment, result = payments.start_processing(payments.get_payment(payment_id), user, self.data)
            return jsonify({
                "success": True,
                "message": "Payment processed successfully",
                "payment": payment.to_dict(),
                "transaction_details": {
                    "transaction_id": result["transaction_id"],
                    "card_brand": result["card_brand"],
                    "card_last4": result["card_last4"],
                    "processing_time": result["processing_time"],
                },
            }), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Payment processing failed", e)

    def update_payment(self, payment_id):
        try:
            user = current_user()
            payment = payments.update_payment(payments.get_payment(payment_id), user, self.data)
            return jsonify({"success": True, "payment": payment.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to update payment", e)

    def delete_payment(self, payment_id):
        try:
            user = current_user()
            payments.delete_payment(payments.get_payment(payment_id), user)
            return jsonify({"success": True, "message": "Payment deleted successfully"}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to delete payment", e)

    def download_receipt(self, payment_id):
        try:
            user = current_user()
            payment = payments.get_payment(payment_id)
            path = payments.payment_receipt(payment, user)
            return send_file(path, as_attachment=True, download_name=f"receipt-{payment.receipt_number}.pdf")
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to download receipt", e)

    def stats(self):
        try:
            user = current_user()
            return jsonify({"success": True, "stats": payments.payment_stats(user)}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch payment statistics", e)

    def generate_from_lease(self):
        try:
            user = current_user()
            lease_id = self.data.get("lease_id")
            if not lease_id:
                raise ValidationFailed("Lease ID is required")

            payment = billing.generate_from_lease(
                leasing.get_lease(lease_id), user,
                month=self.data.get("month"), year=self.data.get("year"),
            )
            return jsonify({"success": True, "message": "Payment generated successfully", "payment": payment.to_dict()}), 201
        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError):
            db.session.rollback()
            return jsonify({"success": False, "message": "Month and year must be numbers"}), 400
        except Exception as e:
            return _server_error("Failed to generate payment", e)

    def generate_all(self):
        try:
            user = current_user()
            results = billing.generate_for_landlord(user, month=self.data.get("month"), year=self.data.get("year"))
            return jsonify({
                "success": True,
                "message": (
                    f"Generated {len(results['created'])} payments, "
                    f"{len(results['existing'])} already existed, {len(results['errors'])} errors"
                ),
                "results": results,
            }), 200
        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError):
            db.session.rollback()
            return jsonify({"success": False, "message": "Month and year must be numbers"}), 400
        except Exception as e:
            return _server_error("Failed to generate payments", e)

    def run_scheduler(self):
        try:
            results = billing.run_daily_tick(date.today())
            return jsonify({"success": True, "results": results}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to run payment scheduler", e)


class MaintenanceController:

    def __init__(self):
        self.data = _request_data()

    def _get(self, request_id):
        maintenance = db.session.get(MaintenanceRequest, parse_uuid(request_id, "request id"))
        if not maintenance:
            raise NotFound("Maintenance request not found")
        return maintenance

    def _scoped(self, query, user):
        if user.role == "landlord":
            return query.filter(MaintenanceRequest.landlord_id == user.id)
        if user.role == "tenant":
            return query.filter(MaintenanceRequest.tenant_id == user.id)
        return query.filter(MaintenanceRequest.assigned_to_id == user.id)

    def get_all_requests(self):
        try:
            user = current_user()
            query = self._scoped(MaintenanceRequest.query, user)

            for field in ("status", "priority", "category"):
                if request.args.get(field):
                    query = query.filter(getattr(MaintenanceRequest, field) == request.args[field])
            if request.args.get("property_id"):
                query = query.filter(
                    MaintenanceRequest.property_id == parse_uuid(request.args["property_id"], "property id")
                )

            items = query.order_by(MaintenanceRequest.created_date.desc()).all()
            return jsonify({"success": True, "count": len(items), "requests": [r.to_dict() for r in items]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch maintenance requests", e)

    def get_request(self, request_id):
        try:
            user = current_user()
            maintenance = self._get(request_id)
            policy.ensure_maintenance_participant(user, maintenance)
            return jsonify({"success": True, "request": maintenance.to_dict()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch maintenance request", e)

    def create_request(self):
        try:
            user = current_user()

            missing = [f for f in ("property_id", "title", "description") if not self.data.get(f)]
            if missing:
                raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

            prop = db.session.get(Property, parse_uuid(self.data["property_id"], "property id"))
            if not prop:
                raise NotFound("Property not found")
            policy.ensure_occupant(user, prop)

            category = self.data.get("category") or "other"
            priority = self.data.get("priority") or "medium"
            if category not in MaintenanceRequest.CATEGORIES:
                raise ValidationFailed("Invalid category")
            if priority not in MaintenanceRequest.PRIORITIES:
                raise ValidationFailed("Invalid priority")

            maintenance = MaintenanceRequest(
                property_id=prop.id,
                tenant_id=user.id,
                landlord_id=prop.landlord_id,
                title=self.data["title"],
                description=self.data["description"],
                category=category,
                priority=priority,
                is_urgent=priority == "urgent",
                status="open",
                images=_saved_uploads("images", "maintenance"),
            )
            db.session.add(maintenance)
            db.session.commit()
            current_app.logger.info(f"Maintenance request {maintenance.id} opened for property {prop.id}")

            dispatch(notify_maintenance_request_task, str(maintenance.id))
            return jsonify({"success": True, "request": maintenance.to_dict()}), 201

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to create maintenance request", e)

    def update_request(self, request_id):
        try:
            user = current_user()
            maintenance = self._get(request_id)
            role = policy.ensure_maintenance_participant(user, maintenance, "Not authorized to update this request")
            allowed = policy.allowed_maintenance_fields(role)

            requested = set(self.data.keys())
            if role == "tenant" and not requested <= allowed:
                raise ValidationFailed("Tenants can only update description")

            changes = {f: self.data[f] for f in requested & allowed}
            if "category" in changes and changes["category"] not in MaintenanceRequest.CATEGORIES:
                raise ValidationFailed("Invalid category")
            if "priority" in changes and changes["priority"] not in MaintenanceRequest.PRIORITIES:
                raise ValidationFailed("Invalid priority")
            if "status" in changes and changes["status"] not in MaintenanceRequest.STATUSES:
                raise ValidationFailed("Invalid status")
            for field in ("estimated_cost", "actual_cost"):
                if changes.get(field) not in (None, ""):
                    changes[field] = float(changes[field])
            if changes.get("scheduled_date"):
                changes["scheduled_date"] = parse_date(changes["scheduled_date"], "scheduled date")

            for field, value in changes.items():
                setattr(maintenance, field, value)
            if "priority" in changes:
                maintenance.is_urgent = changes["priority"] == "urgent"
            if changes.get("status") in ("resolved", "closed") and not maintenance.completed_date:
                maintenance.completed_date = datetime.now()

            new_images = _saved_uploads("images", "maintenance")
            if new_images:
                maintenance.images = list(maintenance.images or []) + new_images

            db.session.commit()
            return jsonify({"success": True, "request": maintenance.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({"success": False, "message": f"Invalid maintenance data: {e}"}), 400
        except Exception as e:
            return _server_error("Failed to update maintenance request", e)

    def delete_request(self, request_id):
        try:
            user = current_user()
            maintenance = self._get(request_id)
            policy.ensure_maintenance_landlord(user, maintenance, "Not authorized to delete this request")

            db.session.delete(maintenance)
            db.session.commit()
            return jsonify({"success": True, "message": "Maintenance request deleted successfully"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to delete maintenance request", e)

    def add_comment(self, request_id):
        try:
            user = current_user()
            maintenance = self._get(request_id)
            policy.ensure_maintenance_participant(user, maintenance, "Not authorized")

            text = (self.data.get("text") or "").strip()
            if not text:
                raise ValidationFailed("Comment text is required")

            db.session.add(MaintenanceComment(request_id=maintenance.id, user_id=user.id, text=text))
            db.session.commit()
            return jsonify({"success": True, "request": maintenance.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to add comment", e)

    def assign_request(self, request_id):
        try:
            user = current_user()
            maintenance = self._get(request_id)
            policy.ensure_maintenance_landlord(user, maintenance)

            manager_id = self.data.get("manager_id")
            manager = db.session.get(User, parse_uuid(manager_id, "manager id")) if manager_id else None
            if not manager or manager.role != "manager":
                raise ValidationFailed("Invalid manager")

            maintenance.assigned_to_id = manager.id
            maintenance.status = "in_progress"
            db.session.commit()
            return jsonify({"success": True, "request": maintenance.to_dict()}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to assign maintenance request", e)

    def stats(self):
        try:
            user = current_user()
            by_status = self._scoped(
                db.session.query(MaintenanceRequest.status, func.count(MaintenanceRequest.id)), user
            ).group_by(MaintenanceRequest.status).all()
            by_priority = self._scoped(
                db.session.query(MaintenanceRequest.priority, func.count(MaintenanceRequest.id)), user
            ).group_by(MaintenanceRequest.priority).all()

            return jsonify({
                "success": True,
                "stats": {
                    "by_status": {status: count for status, count in by_status},
                    "by_priority": {priority: count for priority, count in by_priority},
                },
            }), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch maintenance statistics", e)


class MessageController:

    def __init__(self):
        self.data = _request_data()

    def _visible(self, user):
        """Messages the user sent or received."""
        received = db.session.query(message_recipients.c.message_id).filter(
            message_recipients.c.user_id == user.id
        )
        return Message.query.filter(or_(Message.sender_id == user.id, Message.id.in_(received)))

    def _unread_for(self, user):
        received = db.session.query(message_recipients.c.message_id).filter(
            message_recipients.c.user_id == user.id
        )
        already_read = db.session.query(MessageRead.message_id).filter(MessageRead.user_id == user.id)
        return Message.query.filter(Message.id.in_(received), ~Message.id.in_(already_read))

    def _recipient_ids(self):
        raw = self.data.get("recipient_ids")
        if raw is None:
            raw = request.form.getlist("recipient_ids")
        if isinstance(raw, str):
            raw = [r.strip() for r in raw.split(",") if r.strip()]
        return list(dict.fromkeys(str(r) for r in (raw or [])))

    def send_message(self):
        try:
            user = current_user()
            recipient_ids = self._recipient_ids()
            if not recipient_ids:
                raise ValidationFailed("At least one recipient is required")

            uploads = request.files.getlist("attachments")
            content = (self.data.get("content") or "").strip()
            if not content and not any(f and f.filename for f in uploads):
                raise ValidationFailed("Message content or attachments required")

            ids = [parse_uuid(r, "recipient id") for r in recipient_ids]
            recipients = User.query.filter(User.id.in_(ids)).all()
            if len(recipients) != len(ids):
                raise ValidationFailed("One or more recipients not found")

            attachments = [
                {"filename": f.filename, "url": save_upload(f, "messages"), "mime_type": f.mimetype}
                for f in uploads if f and f.filename
            ]
            property_id = self.data.get("property_id")

            message = Message(
                conversation=Message.conversation_key([user.id, *ids]),
                sender_id=user.id,
                subject=self.data.get("subject"),
                content=content,
                property_id=parse_uuid(property_id, "property id") if property_id else None,
                attachments=attachments,
                type="group" if len(ids) > 1 else "direct",
                related_to=self.data.get("related_to") or "general",
                related_id=self.data.get("related_id"),
            )
            if message.related_to not in Message.RELATED_TO:
                raise ValidationFailed("Invalid related_to value")
            message.recipients = recipients

            db.session.add(message)
            db.session.commit()
            return jsonify({"success": True, "message": message.to_dict()}), 201

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to send message", e)

    def get_conversations(self):
        try:
            user = current_user()
            messages = self._visible(user).order_by(Message.created_date.desc()).all()

            conversations = {}
            for message in messages:
                entry = conversations.setdefault(message.conversation, {
                    "conversation_id": message.conversation,
                    "latest_message": message.to_dict(),
                    "unread_count": 0,
                })
                if str(message.sender_id) != str(user.id) and not message.is_read_by(user.id):
                    entry["unread_count"] += 1

            result = list(conversations.values())
            return jsonify({"success": True, "count": len(result), "conversations": result}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch conversations", e)

    def get_messages(self):
        try:
            user = current_user()
            limit = int(request.args.get("limit", 50))
            skip = int(request.args.get("skip", 0))

            query = self._visible(user)
            if request.args.get("conversation_id"):
                query = query.filter(Message.conversation == request.args["conversation_id"])
            elif request.args.get("user_id"):
                other = parse_uuid(request.args["user_id"], "user id")
                query = query.filter(Message.conversation == Message.conversation_key([user.id, other]))

            messages = query.order_by(Message.created_date.asc()).offset(skip).limit(limit).all()
            return jsonify({"success": True, "count": len(messages), "messages": [m.to_dict() for m in messages]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except ValueError:
            return jsonify({"success": False, "message": "limit and skip must be numbers"}), 400
        except Exception as e:
            return _server_error("Failed to fetch messages", e)

    def mark_as_read(self, message_id):
        try:
            user = current_user()
            message = db.session.get(Message, parse_uuid(message_id, "message id"))
            if not message:
                raise NotFound("Message not found")
            policy.ensure_message_recipient(user, message)

            if not message.is_read_by(user.id):
                db.session.add(MessageRead(message_id=message.id, user_id=user.id))
                db.session.commit()
            return jsonify({"success": True, "message": "Message marked as read"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to mark message as read", e)

    def mark_conversation_as_read(self, conversation_id):
        try:
            user = current_user()
            unread = self._unread_for(user).filter(Message.conversation == conversation_id).all()
            for message in unread:
                db.session.add(MessageRead(message_id=message.id, user_id=user.id))
            db.session.commit()
            return jsonify({"success": True, "message": f"{len(unread)} messages marked as read"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to mark conversation as read", e)

    def unread_count(self):
        try:
            user = current_user()
            return jsonify({"success": True, "unread_count": self._unread_for(user).count()}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to fetch unread count", e)

    def search(self):
        try:
            user = current_user()
            term = (request.args.get("query") or "").strip()
            if not term:
                raise ValidationFailed("Search query is required")

            like_pattern = f"%{term}%"
            messages = self._visible(user).filter(
                or_(Message.subject.ilike(like_pattern), Message.content.ilike(like_pattern))
            ).order_by(Message.created_date.desc()).limit(50).all()
            return jsonify({"success": True, "count": len(messages), "messages": [m.to_dict() for m in messages]}), 200
        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to search messages", e)

    def delete_message(self, message_id):
        try:
            user = current_user()
            message = db.session.get(Message, parse_uuid(message_id, "message id"))
            if not message:
                raise NotFound("Message not found")
            policy.ensure_message_sender(user, message)

            db.session.delete(message)
            db.session.commit()
            return jsonify({"success": True, "message": "Message deleted successfully"}), 200

        except PropertyHubError as e:
            return _fail(e)
        except Exception as e:
            return _server_error("Failed to delete message", e)
