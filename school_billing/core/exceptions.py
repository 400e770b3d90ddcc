class ServiceError(Exception):
    """Base exception for service layer errors."""

    code = "service_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """A referenced department, student, bill or bill item does not exist."""

    code = "not_found"


class ValidationError(ServiceError):
    """Missing required id, invalid pagination or unknown query field."""

    code = "validation_error"


class ConflictError(ServiceError):
    """Duplicate enrollment or other uniqueness clash."""

    code = "conflict"


class StorageError(ServiceError):
    """Constraint violation or I/O failure reported by the store. Always rolls back."""

    code = "storage_error"
