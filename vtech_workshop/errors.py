from __future__ import annotations


# Domain-level errors the calling layer can surface directly (dialog/toast)
class DomainError(Exception):
    pass


class ValidationError(DomainError):
    """Required field missing or malformed. Raised before any write."""


class NotFound(DomainError):
    pass


class InsufficientStock(DomainError):
    def __init__(self, part_id: int, requested: int, available: int):
        self.part_id = part_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for part #{part_id}: "
            f"requested {requested}, available {available}."
        )


class PermissionDenied(DomainError):
    def __init__(self, capability: str, role: str | None):
        self.capability = capability
        self.role = role
        super().__init__(
            f"Permission denied: '{capability}' requires admin (current role: {role or 'none'})."
        )


class InvalidTransition(DomainError):
    """Illegal job status change, or a parts edit on a closed job."""


class BackendFailure(DomainError):
    """The store rejected or failed a write. The transaction was rolled back."""


class AuthenticationFailed(DomainError):
    """
    Sign-in refused. `code` is one of: empty_fields, user_not_found,
    user_inactive, locked_out, wrong_password.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(message)
