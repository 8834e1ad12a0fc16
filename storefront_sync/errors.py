"""Exceptions raised by the storefront sync core."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for every error raised by this package."""


class NetworkError(StorefrontError):
    """The remote endpoint could not be reached or timed out."""


class DecodeError(StorefrontError):
    """The response body was not the structured document we expected."""


class ServerError(StorefrontError):
    """The server answered with a non-2xx status code."""

    def __init__(self, status_code: int, message: Optional[str] = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"Server responded with HTTP {status_code}")


class CapacityExceeded(StorefrontError):
    """A cart mutation would push the aggregate quantity over the cap."""

    def __init__(self, requested: int, current: int, capacity: int) -> None:
        self.requested = requested
        self.current = current
        self.capacity = capacity
        super().__init__(
            f"Only {capacity} products allowed in the cart "
            f"(currently {current}, requested {requested})"
        )


class NotFound(StorefrontError):
    """An operation required an entity that does not exist."""

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class AuthenticationError(StorefrontError):
    """Sign-in or sign-up was rejected, or a token is required but missing."""


class ConfigUnavailable(StorefrontError):
    """No configuration document has been loaded yet."""
