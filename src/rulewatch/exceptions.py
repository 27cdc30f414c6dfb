"""Custom exception hierarchy for rulewatch.

All rulewatch exceptions inherit from RulewatchError, allowing callers
to catch broad or specific errors:

    try:
        await store.add_rule(...)
    except StorePersistenceError as e:
        print(f"Rule kept in memory but not saved: {e}")
    except RulewatchError as e:
        print(f"rulewatch error: {e}")
"""

from __future__ import annotations


class RulewatchError(Exception):
    """Base exception for all rulewatch errors."""


class ConfigError(RulewatchError):
    """Raised when configuration is invalid or missing."""


class StoreError(RulewatchError):
    """Raised when the rule store cannot complete an operation."""


class StorePersistenceError(StoreError):
    """Raised when writing the rules file fails (disk full, permissions)."""


class ProviderError(RulewatchError):
    """Raised when a language model provider call fails."""


class ProviderUnavailableError(ProviderError):
    """Raised when the model service cannot be reached or lacks the model."""


class ProviderResponseError(ProviderError):
    """Raised when the model service returns an unusable response."""


class RuleValidationError(RulewatchError):
    """Raised when a compiled rule fails static or intent validation.

    ``issues`` holds every ValidationIssue that was found.
    """

    def __init__(self, message: str, issues: list | None = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


class DaemonUnavailableError(RulewatchError):
    """Raised when no daemon answers at the configured API address."""


class DaemonRequestError(RulewatchError):
    """Raised when the daemon API answers with an error status.

    ``status`` is the HTTP status and ``payload`` the decoded JSON body.
    """

    def __init__(self, status: int, payload: object = None) -> None:
        error = payload.get("error") if isinstance(payload, dict) else None
        super().__init__(error or f"HTTP {status}")
        self.status = status
        self.payload = payload
