from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import jwt_required
from propertyhub.utils.helper import roles_required
from propertyhub.utils.controller import (
    AuthController, ProfileController, PropertyController, LeaseController,
    PaymentController, MaintenanceController, MessageController,
)

api = Blueprint("api", __name__, url_prefix="/api")


def _route_error(message, e):
    current_app.logger.error(f"{message}: {e}", exc_info=True)
    return jsonify({"success": False, "message": message}), 500


@api.route("/health")
def health():
    return jsonify({"success": True, "status": "ok", "message": "PropertyHub API running"}), 200


# ---------------------
# Authentication Routes
# ---------------------

@api.route("/auth/register", methods=["POST"])
def register():
    try:
        return AuthController().register()
    except Exception as e:
        return _route_error("Registration failed", e)


@api.route("/auth/login", methods=["POST"])
def login():
    try:
        return AuthController().login()
    except Exception as e:
        return _route_error("Login failed", e)


@api.route("/auth/refresh", methods=["POST"])
@jwt_required(refresh=True)
def refresh_token():
    try:
        return AuthController().refresh()
    except Exception as e:
        return _route_error("Token refresh failed", e)


@api.route("/auth/logout", methods=["POST"])
@jwt_required()
def logout():
    try:
        return AuthController().logout()
    except Exception as e:
        return _route_error("Logout failed", e)


@api.route("/auth/me", methods=["GET"])
@jwt_required()
def me():
    try:
        return AuthController().me()
    except Exception as e:
        return _route_error("Failed to fetch user", e)


@api.route("/auth/users", methods=["GET"])
@jwt_required()
@roles_required("landlord", "manager")
def list_users():
    try:
        return AuthController().list_users()
    except Exception as e:
        return _route_error("Failed to fetch users", e)


@api.route("/auth/forgot-password", methods=["POST"])
def forgot_password():
    try:
        return AuthController().forgot_password()
    except Exception as e:
        return _route_error("Failed to process forgot password", e)


@api.route("/auth/reset-password/<token>", methods=["POST"])
def reset_password(token):
    try:
        return AuthController().reset_password(token)
    except Exception as e:
        return _route_error("Failed to reset password", e)


# ---------------------
# Profile Routes
# ---------------------

@api.route("/auth/profile", methods=["GET"])
@jwt_required()
def get_profile():
    try:
        return ProfileController().get_profile()
    except Exception as e:
        return _route_error("Failed to fetch profile", e)


@api.route("/auth/profile", methods=["PUT"])
@jwt_required()
def update_profile():
    try:
        return ProfileController().update_profile()
    except Exception as e:
        return _route_error("Failed to update profile", e)


@api.route("/auth/password", methods=["PUT"])
@jwt_required()
def change_password():
    try:
        return ProfileController().change_password()
    except Exception as e:
        return _route_error("Failed to change password", e)


# ---------------------
# Property Routes
# ---------------------

@api.route("/properties", methods=["GET"])
@jwt_required()
def get_properties():
    try:
        return PropertyController().get_all_properties()
    except Exception as e:
        return _route_error("Failed to fetch properties", e)


@api.route("/properties/<uuid:property_id>", methods=["GET"])
@jwt_required()
def get_property(property_id):
    try:
        return PropertyController().get_property(property_id)
    except Exception as e:
        return _route_error("Failed to fetch property", e)


@api.route("/properties", methods=["POST"])
@jwt_required()
@roles_required("landlord")
def add_property():
    try:
        return PropertyController().add_property()
    except Exception as e:
        return _route_error("Failed to add property", e)


@api.route("/properties/<uuid:property_id>", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def update_property(property_id):
    try:
        return PropertyController().update_property(property_id)
    except Exception as e:
        return _route_error("Failed to update property", e)


@api.route("/properties/<uuid:property_id>", methods=["DELETE"])
@jwt_required()
@roles_required("landlord")
def delete_property(property_id):
    try:
        return PropertyController().delete_property(property_id)
    except Exception as e:
        return _route_error("Failed to delete property", e)


@api.route("/properties/<uuid:property_id>/tenant", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def assign_tenant(property_id):
    try:
        return PropertyController().assign_tenant(property_id)
    except Exception as e:
        return _route_error("Failed to assign tenant", e)


@api.route("/properties/<uuid:property_id>/tenant", methods=["DELETE"])
@jwt_required()
@roles_required("landlord")
def remove_tenant(property_id):
    try:
        return PropertyController().remove_tenant(property_id)
    except Exception as e:
        return _route_error("Failed to remove tenant", e)


@api.route("/properties/<uuid:property_id>/manager", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def assign_manager(property_id):
    try:
        return PropertyController().assign_manager(property_id)
    except Exception as e:
        return _route_error("Failed to assign manager", e)


@api.route("/properties/<uuid:property_id>/status", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def update_property_status(property_id):
    try:
        return PropertyController().update_status(property_id)
    except Exception as e:
        return _route_error("Failed to update property status", e)


# ---------------------
# Lease Routes
# ---------------------

@api.route("/leases/expiring", methods=["GET"])
@jwt_required()
@roles_required("landlord")
def expiring_leases():
    try:
        return LeaseController().expiring_leases()
    except Exception as e:
        return _route_error("Failed to fetch expiring leases", e)


@api.route("/leases", methods=["GET"])
@jwt_required()
def get_leases():
    try:
        return LeaseController().get_all_leases()
    except Exception as e:
        return _route_error("Failed to fetch leases", e)


@api.route("/leases/<uuid:lease_id>", methods=["GET"])
@jwt_required()
def get_lease(lease_id):
    try:
        return LeaseController().get_lease(lease_id)
    except Exception as e:
        return _route_error("Failed to fetch lease", e)


@api.route("/leases/<uuid:lease_id>/document", methods=["GET"])
@jwt_required()
def download_lease_document(lease_id):
    try:
        return LeaseController().download_document(lease_id)
    except Exception as e:
        return _route_error("Failed to download lease document", e)


@api.route("/leases", methods=["POST"])
@jwt_required()
@roles_required("landlord")
def create_lease():
    try:
        return LeaseController().create_lease()
    except Exception as e:
        return _route_error("Failed to create lease", e)


@api.route("/leases/<uuid:lease_id>", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def update_lease(lease_id):
    try:
        return LeaseController().update_lease(lease_id)
    except Exception as e:
        return _route_error("Failed to update lease", e)


@api.route("/leases/<uuid:lease_id>", methods=["DELETE"])
@jwt_required()
@roles_required("landlord")
def delete_lease(lease_id):
    try:
        return LeaseController().delete_lease(lease_id)
    except Exception as e:
        return _route_error("Failed to delete lease", e)


@api.route("/leases/<uuid:lease_id>/sign", methods=["POST"])
@jwt_required()
def sign_lease(lease_id):
    try:
        return LeaseController().sign_lease(lease_id)
    except Exception as e:
        return _route_error("Failed to sign lease", e)


@api.route("/leases/<uuid:lease_id>/terminate", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def terminate_lease(lease_id):
    try:
        return LeaseController().terminate_lease(lease_id)
    except Exception as e:
        return _route_error("Failed to terminate lease", e)


# ---------------------
# Payment Routes
# ---------------------

@api.route("/payments/stats", methods=["GET"])
@jwt_required()
def payment_stats():
    try:
        return PaymentController().stats()
    except Exception as e:
        return _route_error("Failed to fetch payment statistics", e)


@api.route("/payments/generate-from-lease", methods=["POST"])
@jwt_required()
@roles_required("landlord")
def generate_payment_from_lease():
    try:
        return PaymentController().generate_from_lease()
    except Exception as e:
        return _route_error("Failed to generate payment", e)


@api.route("/payments/generate-all", methods=["POST"])
@jwt_required()
@roles_required("landlord")
def generate_all_payments():
    try:
        return PaymentController().generate_all()
    except Exception as e:
        return _route_error("Failed to generate payments", e)


@api.route("/payments/run-scheduler", methods=["POST"])
@jwt_required()
@roles_required("landlord")
def run_payment_scheduler():
    try:
        return PaymentController().run_scheduler()
    except Exception as e:
        return _route_error("Failed to run payment scheduler", e)


@api.route("/payments", methods=["GET"])
@jwt_required()
def get_payments():
    try:
        return PaymentController().get_all_payments()
    except Exception as e:
        return _route_error("Failed to fetch payments", e)


@api.route("/payments/<uuid:payment_id>", methods=["GET"])
@jwt_required()
def get_payment(payment_id):
    try:
        return PaymentController().get_payment(payment_id)
    except Exception as e:
        return _route_error("Failed to fetch payment", e)


@api.route("/payments/<uuid:payment_id>/receipt", methods=["GET"])
@jwt_required()
def download_receipt(payment_id):
    try:
        return PaymentController().download_receipt(payment_id)
    except Exception as e:
        return _route_error("Failed to download receipt", e)


@api.route("/payments", methods=["POST"])
@jwt_required()
@roles_required("landlord", "tenant")
def create_payment():
    try:
        return PaymentController().create_payment()
    except Exception as e:
        return _route_error("Failed to create payment", e)


@api.route("/payments/<uuid:payment_id>/process", methods=["POST"])
@jwt_required()
@roles_required("tenant")
def process_payment(payment_id):
    try:
        return PaymentController().process_payment(payment_id)
    except Exception as e:
        return _route_error("Payment processing failed", e)


@api.route("/payments/<uuid:payment_id>", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def update_payment(payment_id):
    try:
        return PaymentController().update_payment(payment_id)
    except Exception as e:
        return _route_error("Failed to update payment", e)


@api.route("/payments/<uuid:payment_id>", methods=["DELETE"])
@jwt_required()
@roles_required("landlord")
def delete_payment(payment_id):
    try:
        return PaymentController().delete_payment(payment_id)
    except Exception as e:
        return _route_error("Failed to delete payment", e)


# ---------------------
# Maintenance Routes
# ---------------------

@api.route("/maintenance/stats", methods=["GET"])
@jwt_required()
def maintenance_stats():
    try:
        return MaintenanceController().stats()
    except Exception as e:
        return _route_error("Failed to fetch maintenance statistics", e)


@api.route("/maintenance", methods=["GET"])
@jwt_required()
def get_maintenance_requests():
    try:
        return MaintenanceController().get_all_requests()
    except Exception as e:
        return _route_error("Failed to fetch maintenance requests", e)


@api.route("/maintenance/<uuid:request_id>", methods=["GET"])
@jwt_required()
def get_maintenance_request(request_id):
    try:
        return MaintenanceController().get_request(request_id)
    except Exception as e:
        return _route_error("Failed to fetch maintenance request", e)


@api.route("/maintenance", methods=["POST"])
@jwt_required()
@roles_required("tenant")
def create_maintenance_request():
    try:
        return MaintenanceController().create_request()
    except Exception as e:
        return _route_error("Failed to create maintenance request", e)


@api.route("/maintenance/<uuid:request_id>", methods=["PUT"])
@jwt_required()
def update_maintenance_request(request_id):
    try:
        return MaintenanceController().update_request(request_id)
    except Exception as e:
        return _route_error("Failed to update maintenance request", e)


@api.route("/maintenance/<uuid:request_id>", methods=["DELETE"])
@jwt_required()
@roles_required("landlord")
def delete_maintenance_request(request_id):
    try:
        return MaintenanceController().delete_request(request_id)
    except Exception as e:
        return _route_error("Failed to delete maintenance request", e)


@api.route("/maintenance/<uuid:request_id>/comments", methods=["POST"])
@jwt_required()
def add_maintenance_comment(request_id):
    try:
        return MaintenanceController().add_comment(request_id)
    except Exception as e:
        return _route_error("Failed to add comment", e)


@api.route("/maintenance/<uuid:request_id>/assign", methods=["PUT"])
@jwt_required()
@roles_required("landlord")
def assign_maintenance_request(request_id):
    try:
        return MaintenanceController().assign_request(request_id)
    except Exception as e:
        return _route_error("Failed to assign maintenance request", e)


# ---------------------
# Message Routes
# ---------------------

@api.route("/messages/unread/count", methods=["GET"])
@jwt_required()
def unread_message_count():
    try:
        return MessageController().unread_count()
    except Exception as e:
        return _route_error("Failed to fetch unread count", e)


@api.route("/messages/search", methods=["GET"])
@jwt_required()
def search_messages():
    try:
        return MessageController().search()
    except Exception as e:
        return _route_error("Failed to search messages", e)


@api.route("/messages/conversations", methods=["GET"])
@jwt_required()
def get_conversations():
    try:
        return MessageController().get_conversations()
    except Exception as e:
        return _route_error("Failed to fetch conversations", e)


@api.route("/messages/conversation/<conversation_id>/read", methods=["PUT"])
@jwt_required()
def mark_conversation_read(conversation_id):
    try:
        return MessageController().mark_conversation_as_read(conversation_id)
    except Exception as e:
        return _route_error("Failed to mark conversation as read", e)


@api.route("/messages", methods=["GET"])
@jwt_required()
def get_messages():
    try:
        return MessageController().get_messages()
    except Exception as e:
        return _route_error("Failed to fetch messages", e)


@api.route("/messages", methods=["POST"])
@jwt_required()
def send_message():
    try:
        return MessageController().send_message()
    except Exception as e:
        return _route_error("Failed to send message", e)


@api.route("/messages/<uuid:message_id>/read", methods=["PUT"])
@jwt_required()
def mark_message_read(message_id):
    try:
        return MessageController().mark_as_read(message_id)
    except Exception as e:
        return _route_error("Failed to mark message as read", e)


@api.route("/messages/<uuid:message_id>", methods=["DELETE"])
@jwt_required()
def delete_message(message_id):
    try:
        return MessageController().delete_message(message_id)
    except Exception as e:
        return _route_error("Failed to delete message", e)
