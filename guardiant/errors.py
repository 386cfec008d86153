"""Error taxonomy surfaced to callers."""

UNAUTHENTICATED = "unauthenticated"
INVALID_ARGUMENT = "invalid-argument"
NOT_FOUND = "not-found"
PERMISSION_DENIED = "permission-denied"
UNAVAILABLE = "unavailable"
INTERNAL = "internal"


HTTP_STATUS = {
    UNAUTHENTICATED: 401,
    INVALID_ARGUMENT: 400,
    NOT_FOUND: 404,
    PERMISSION_DENIED: 403,
    UNAVAILABLE: 503,
    INTERNAL: 500,
}


class ServiceError(Exception):
    """
    Error raised by a service and rendered to the caller as-is.

    `code` is one of the taxonomy values above, `reason` an optional
    machine-readable detail (e.g. "email-in-use", "expired").
    """

    def __init__(self, code: str, message: str, reason: str = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.reason = reason

    @property
    def status_code(self) -> int:
        return HTTP_STATUS.get(self.code, 500)

    def to_dict(self):
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "reason": self.reason,
            }
        }


class OTPVerificationError(ServiceError):

    CODES = {
        "not-found": NOT_FOUND,
        "expired": INVALID_ARGUMENT,
        "locked": PERMISSION_DENIED,
        "mismatch": INVALID_ARGUMENT,
    }

    def __init__(self, reason: str, message: str):
        super().__init__(self.CODES[reason], message, reason=reason)
