"""
Error types shared by the mapping layer and the platform integrations.
"""
from typing import Optional


class MappingValidationError(ValueError):
    """A required field is missing on a mapping write."""


class UpstreamAPIError(Exception):
    """A call to LearnWorlds or Shopify failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, context: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.context = context

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message


class ConfigurationError(UpstreamAPIError):
    """Credentials or base URL missing; detected on first use."""
