"""Contract workflow errors.

Every failure the workflow can report maps to exactly one of these classes.
``main.py`` registers a handler that turns them into JSON responses using
``status_code`` and ``code``, so the public signing page can tell an expired
link from an already-signed contract from an unknown token.
"""

from typing import Optional


class ContractError(Exception):
    status_code = 400
    code = "contract_error"
    default_message = "Contract operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ContractError):
    status_code = 404
    code = "not_found"
    default_message = "Contract not found"


class Forbidden(ContractError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have access to this contract"


class Expired(ContractError):
    status_code = 410
    code = "expired"
    default_message = "Contract has expired"


class Cancelled(Expired):
    """Owner revoked the contract; surfaced like an expired link."""

    code = "cancelled"
    default_message = "Contract has been cancelled"


class AlreadySigned(ContractError):
    status_code = 409
    code = "already_signed"
    default_message = "Contract already signed"


class ClientNotYetSigned(ContractError):
    status_code = 409
    code = "client_not_yet_signed"
    default_message = "Client must sign first"


class InvalidState(ContractError):
    status_code = 409
    code = "invalid_state"
    default_message = "Operation not allowed in the contract's current status"


class ValidationFailed(ContractError):
    status_code = 422
    code = "validation_failed"
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class RenderFailed(ContractError):
    status_code = 502
    code = "render_failed"
    default_message = "Failed to generate PDF"


class StorageUnavailable(ContractError):
    """Transient storage failure. Safe for the caller to retry."""

    status_code = 503
    code = "storage_unavailable"
    default_message = "Storage temporarily unavailable"
