"""Domain error taxonomy.

Services raise these; a single error handler registered in create_app()
turns them into the JSON error envelope:

    {"error": {"code": "...", "message": "...", "details": {...}}}

- ValidationError       422  malformed input, nothing persisted
- ForbiddenError        403  authenticated but the plan does not allow it
- NotFoundError         404  absent OR not owned by the caller (same answer)
- ConflictError         409  invalid state transition, state unchanged
- ExternalServiceError  502  provider / mail failure, caller may retry
"""


class BackOfficeError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self):
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(BackOfficeError):
    status_code = 422
    code = "invalid_request"


class InvalidJSONError(ValidationError):
    status_code = 400
    code = "invalid_json"


class NotFoundError(BackOfficeError):
    status_code = 404
    code = "not_found"


class ConflictError(BackOfficeError):
    status_code = 409
    code = "conflict"


class ExternalServiceError(BackOfficeError):
    status_code = 502
    code = "external_service_failed"


class DeliveryError(ExternalServiceError):
    """The notification sender could not deliver a message."""

    code = "email_failed"


class ProviderError(ExternalServiceError):
    """A payment provider (Stripe / PayPal) call failed."""

    code = "provider_failed"


class NotConfiguredError(ConflictError):
    """An integration is used before its credentials are configured."""

    code = "not_configured"


class UnauthorizedError(BackOfficeError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(BackOfficeError):
    status_code = 403
    code = "forbidden"
