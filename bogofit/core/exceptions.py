"""
Exceptions raised by the fitting service layers.

Orchestration code resolves failures to status messages; these are raised by
the lower-level helpers and translated to HTTP errors by the endpoints.
"""


class FittingError(Exception):
    """Base exception for the virtual fitting service."""
    pass


class ImageProxyError(FittingError):
    """A remote image could not be fetched through the proxy."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class GenerationError(FittingError):
    """The AI provider returned no usable output."""
    pass


class ProviderNotConfiguredError(GenerationError):
    """The AI provider credentials are missing."""
    pass
