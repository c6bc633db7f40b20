"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageError(AppError):
    """Raised when a storage bucket operation fails."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class DownloadError(PipelineError):
    """Plan file could not be downloaded after all attempts."""

    def __init__(self, message: str, attempt_errors: list = None, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.attempt_errors = list(attempt_errors or [])


class FileTooLargeError(PipelineError):
    """Plan file exceeds the configured size ceiling."""
    pass


class TextExtractionError(PipelineError):
    """Per-page text extraction failed or timed out."""
    pass


class ImageExtractionError(PipelineError):
    """Page image conversion failed."""
    pass


class PersistenceError(PipelineError):
    """Sheet index or chunk rows could not be written."""
    pass


class TakeoffError(PipelineError):
    """Unrecoverable failure inside a takeoff run."""
    pass


class PlanNotFoundError(AppError):
    """Raised when a plan is not found."""
    pass


class IngestionInProgressError(AppError):
    """Raised when an ingestion run for the same plan is still active."""
    pass
