class CategorizationError(Exception):
    """Base class for errors raised by the categorizer."""


class ValidationError(CategorizationError, ValueError):
    """A transaction is missing required fields or carries invalid values."""

    def __init__(self, message: str, transaction_id: str | None = None):
        super().__init__(message)
        self.transaction_id = transaction_id


class ConfigurationError(CategorizationError):
    """The caller passed options the categorizer cannot work with."""


class ClassificationError(CategorizationError):
    """The external AI classifier could not produce a usable category."""


class AIClassifierError(ClassificationError):
    """A single call to the AI backend failed and may be retried."""
