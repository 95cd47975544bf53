class AiClientError(Exception):
    """Raised when an AI provider call fails."""


class AiNetworkError(AiClientError):
    """Raised when the provider call fails due to network/infrastructure issues."""


class AiAuthenticationError(AiClientError):
    """Raised when the provider rejects the configured credentials."""


class AiStreamError(AiClientError):
    """Raised when a response stream is malformed or terminates abnormally."""


class AiTimeoutError(AiClientError):
    """Raised when one streaming attempt exceeds its wall-clock budget."""
