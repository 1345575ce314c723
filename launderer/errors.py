"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``launderer.main`` turns them into JSON responses of the
form ``{"error": detail}`` with the class's status code.
"""


class LaundererError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail=None, status_code=None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class ValidationError(LaundererError):
    status_code = 400
    default_detail = "Validation error"


class NotFoundError(LaundererError):
    status_code = 404
    default_detail = "Not found"


class ProfileNotFoundError(NotFoundError):
    default_detail = "User profile not found. Please complete your profile first."


class ConflictError(LaundererError):
    status_code = 409
    default_detail = "Conflict"


class AuthError(LaundererError):
    status_code = 401
    default_detail = "Invalid or missing token"


class ForbiddenError(AuthError):
    status_code = 403
    default_detail = "Access denied"


class WebhookSignatureError(AuthError):
    status_code = 400
    default_detail = "Invalid signature"


class ExternalServiceError(LaundererError):
    status_code = 502
    default_detail = "Payment processor error"


class InternalError(LaundererError):
    pass
