class ResponseFormatError(Exception):
    """Raised internally when a model response does not have the expected shape."""
