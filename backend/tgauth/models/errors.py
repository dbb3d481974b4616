# /tgauth/models/errors.py

# Domain errors raised by the services. Each carries the HTTP status it maps
# to; the API renders them as {"error": message} and the bot dispatcher turns
# them into chat replies.


class ServiceError(Exception):
    status_code = 400
    message = "request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    message = "invalid request"


class AuthError(ServiceError):
    status_code = 401
    message = "unauthorized"


class AdminDisabled(AuthError):
    status_code = 503
    message = "admin disabled"


class NotFound(ServiceError):
    status_code = 404
    message = "not found"


class NotLinked(NotFound):
    message = "phone not linked to telegram"


class ProjectNotFound(NotFound):
    message = "project not found"


class SessionNotFound(NotFound):
    status_code = 400
    message = "session not found"


class ProjectInactive(NotFound):
    status_code = 400
    message = "project inactive"


class CodeNotFound(NotFound):
    status_code = 400
    message = "code not found"


class CodeExpired(ServiceError):
    message = "code expired"


class InvalidCode(ServiceError):
    message = "invalid code"


class RateLimited(ServiceError):
    status_code = 429
    message = "too many requests"


class TooManyAttempts(RateLimited):
    message = "too many attempts"


class DeliveryError(ServiceError):
    message = "delivery failed"


class TransientStoreError(ServiceError):
    status_code = 503
    message = "storage unavailable"


class ActionExpired(ServiceError):
    message = "session expired"


class IdentityConflict(ServiceError):
    status_code = 409
    message = "phone link conflict"
