"""Custom exception hierarchy for the noteindex embedding layer."""


class NoteIndexError(Exception):
    """Base exception for all noteindex errors."""


class ConfigurationError(NoteIndexError):
    """Raised when no embedding model is configured."""


class BackendUnreachableError(NoteIndexError):
    """Raised when the inference backend cannot be reached."""


class GenerationError(NoteIndexError):
    """Raised when a single embedding call fails or returns an unusable vector."""


class TooManyErrorsError(GenerationError):
    """Raised when a batch regeneration aborts after too many per-document failures.

    Attributes:
        errors: Number of failed documents at abort time.
        processed: Number of documents processed at abort time.
    """

    def __init__(self, errors: int, processed: int) -> None:
        self.errors = errors
        self.processed = processed
        super().__init__(
            f"Too many errors during generation ({errors} failed after {processed} documents)"
        )


class CacheInvalidError(NoteIndexError):
    """Raised when a persisted snapshot cannot be used (version, model, or format)."""


class NotInitializedError(NoteIndexError):
    """Raised when an operation requires a ready index."""


class TemplateError(NoteIndexError):
    """Raised when a prompt template contains unknown placeholders."""
