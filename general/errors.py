"""
Error taxonomy shared by every service and API view.

Each error carries the HTTP status it maps to and a message that is safe to
show to the user. Services raise them; ``general.decorators.json_api`` turns
them into JSON responses.
"""


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int = None, details=None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)

    def as_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class AuthenticationRequired(MarketplaceError):
    status_code = 401


class AuthorizationError(MarketplaceError):
    """Wrong role or not a participant. No state is changed."""
    status_code = 403


class ValidationError(MarketplaceError):
    """Malformed request: bad amount, missing fields, wrong state."""
    status_code = 400


class NotFoundError(MarketplaceError):
    status_code = 404


class ExternalServiceError(MarketplaceError):
    """Payment gateway, payouts API or signature failures."""
    status_code = 502


class ConsistencyViolation(ValidationError):
    """Request would break a financial invariant; rejected before any mutation."""
