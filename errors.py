from typing import Optional


class LedgerError(ValueError):
    """Base for failures that map onto an error envelope with a fixed code."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[object] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details


class MalformedInput(LedgerError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class PayloadInvalid(LedgerError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFound(LedgerError):
    status_code = 404
    default_code = "NOT_FOUND"


class ReferenceNotFound(NotFound):
    # The missing row was named inside a request body, not in the path.
    status_code = 400


class Conflict(LedgerError):
    status_code = 409
    default_code = "CONFLICT"


class DomainInvalid(LedgerError):
    status_code = 400
    default_code = "DOMAIN_INVALID"
