"""
Error taxonomy for the upgrade responder.

Startup-fatal problems raise ConfigurationError (or a subclass) and abort the
process before it starts serving. StoreError is raised by the store adapter and
is handled inside the telemetry path; it never reaches an HTTP caller.
"""
from __future__ import annotations


class UpgradeResponderError(Exception):
    """Base class for all upgrade responder errors."""


class ConfigurationError(UpgradeResponderError):
    """Invalid or unreadable startup input (flags, files, collaborators)."""


class ValidationError(ConfigurationError):
    """A version catalog or request schema failed validation."""


class StoreError(UpgradeResponderError):
    """The time-series store rejected a write or query."""

    def __init__(self, message: str, *, already_exists: bool = False) -> None:
        super().__init__(message)
        self.already_exists = already_exists


class UnrecoverableConfigError(ConfigurationError):
    """
    A continuous query with the same name but different parameters already
    exists. It has to be dropped out-of-band before the process is restarted.
    """

    def __init__(self, rule_name: str, database: str, cause: Exception | None = None) -> None:
        self.rule_name = rule_name
        self.database = database
        self.cause = cause
        super().__init__(
            f"continuous query {rule_name} already exists in database {database} and cannot be modified; "
            f"if the query period changed, drop {rule_name} manually and restart"
        )
