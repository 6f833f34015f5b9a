class PropertyHubError(Exception):
    """Base class for business-rule failures raised by the core."""

    status_code = 500

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_response(self):
        body = {"success": False, "message": self.message}
        body.update(self.payload)
        return body


class Unauthenticated(PropertyHubError):
    status_code = 401


class Forbidden(PropertyHubError):
    status_code = 403


class NotFound(PropertyHubError):
    status_code = 404


class Conflict(PropertyHubError):
    status_code = 400


class ValidationFailed(PropertyHubError):
    status_code = 400


class GatewayDeclined(PropertyHubError):
    """A card was rejected; the payment has already been moved to ``failed``."""

    status_code = 400
