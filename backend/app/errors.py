"""Exception hierarchy shared by the tracker services."""


class TrackerError(Exception):
    """Base error."""
    status_code = 500

    def __init__(self, message: str, code: str = "TRACKER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TrackerError):
    """A required field is missing or malformed."""
    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="VALIDATION_ERROR")


class AuthenticationError(TrackerError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_ERROR")


class ForbiddenError(TrackerError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN")


class NotFoundError(TrackerError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class ConflictError(TrackerError):
    """Unique field already taken (username, email)."""
    status_code = 400

    def __init__(self, message: str = "Already exists"):
        super().__init__(message, code="CONFLICT")


class StorageError(TrackerError):
    """Persistence failure. Always surfaced to the caller."""
    status_code = 500

    def __init__(self, message: str = "Storage failure"):
        super().__init__(message, code="STORAGE_ERROR")
