class ScanError(Exception):
    """Base exception for scan-run errors."""


class ScanConfigurationError(ScanError):
    """Raised before a run starts when a prerequisite is missing."""


class NoAiSourceError(ScanConfigurationError):
    """Raised when no enabled source has an API key."""


class NoModelError(ScanConfigurationError):
    """Raised when an eligible source has no model configured."""

    def __init__(self, source_name: str) -> None:
        super().__init__(f"AI source '{source_name}' has no model configured")
        self.source_name = source_name


class PdfBlockedError(ScanConfigurationError):
    """Raised when a PDF is queued but no eligible source accepts PDFs."""


class ScanInProgressError(ScanError):
    """Raised when a run is requested while another one is still working."""


class ImproveError(ScanError):
    """Raised when a refine-answer request cannot be started."""


class PromptLoadError(ScanError):
    """Raised when a bundled prompt template cannot be read."""


class UnparseableResponseError(ScanError):
    """Raised when a source answers with text that is neither the expected JSON nor XML."""
