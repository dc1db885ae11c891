"""
Exception taxonomy shared by the identity, data and storage layers.

Route handlers translate these into HTTP responses; nothing below the
routes knows about status codes.
"""

from __future__ import annotations


class TaskboardError(Exception):
    """Base class for all service errors."""


class ConfigurationError(TaskboardError):
    """Required process configuration is missing or invalid."""


class CredentialRejected(TaskboardError):
    """The identity provider refused the bearer credential."""


class IdentityProviderError(TaskboardError):
    """The identity provider could not be reached or answered unexpectedly."""


class SignupRejected(TaskboardError):
    """The identity provider refused to create the account (e.g. duplicate email)."""


class InvalidCredentials(TaskboardError):
    """Email/password exchange was refused."""


class DataStoreError(TaskboardError):
    """A query or mutation against the data store failed."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class StorageError(TaskboardError):
    """An object storage operation failed."""
