class IntakeError(Exception):
    """Base exception for all intake-related errors."""


class UnsupportedMediaTypeError(IntakeError):
    """Raised when a file is neither an image nor a PDF."""


class FileReadError(IntakeError):
    """Raised when a file cannot be read from disk."""
