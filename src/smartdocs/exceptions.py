"""Exception hierarchy for SmartDocs."""


class SmartDocsError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ProviderError(SmartDocsError):
    """Raised when the generative service call fails."""


class ProviderNotConfiguredError(ProviderError):
    """Raised when no generative service provider has credentials."""


class SkillParseError(SmartDocsError):
    """Raised when a skill response cannot be parsed into its declared shape."""


class InputContractError(SmartDocsError):
    """Raised when caller input is missing or invalid."""


class NotFoundError(SmartDocsError):
    """Raised when a document, placeholder, conversation or conflict is absent."""


class SkillNotFoundError(NotFoundError):
    """Raised when a skill name is not registered."""


class StateError(SmartDocsError):
    """Raised when an operation is not allowed in the current state."""


class ConcurrentUpdateError(StateError):
    """Raised when a versioned record was modified by another writer."""


class TextExtractionError(SmartDocsError):
    """Raised when plain text cannot be extracted from a document."""


class RetryExhaustedError(ProviderError):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, message: str, failures: list[str], original_error: Exception | None = None):
        super().__init__(message, original_error)
        self.failures = failures
