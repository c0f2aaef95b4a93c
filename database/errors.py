"""
Errors raised by the user store.

Messages are safe to show to clients; driver details go to the log only.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every user-store failure."""

    message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidInput(StoreError):
    message = "Invalid input"


class DuplicateUsername(StoreError):
    message = "User name already taken"


class BadCredentials(StoreError):
    # unknown user and wrong password share this message
    message = "Incorrect username or password"


class UserNotFound(StoreError):
    message = "Unable to find user"


class UpstreamFailure(StoreError):
    message = "Service temporarily unavailable"
