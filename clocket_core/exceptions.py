"""Domain-specific exceptions for the Clocket core repositories."""

class ValidationError(ValueError):
    """Raised when provided data does not meet validation requirements."""


class RecordNotFoundError(LookupError):
    """Raised by outer surfaces when a repository reports a missing record."""


class PersistenceError(IOError):
    """Raised when the durable store encounters unrecoverable issues."""
