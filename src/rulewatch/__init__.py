"""rulewatch — natural-language rules for file-change events."""

__version__ = "0.3.0"

from .exceptions import (
    ConfigError,
    DaemonRequestError,
    DaemonUnavailableError,
    ProviderError,
    ProviderResponseError,
    ProviderUnavailableError,
    RuleValidationError,
    RulewatchError,
    StoreError,
    StorePersistenceError,
)

__all__ = [
    "__version__",
    "RulewatchError",
    "ConfigError",
    "DaemonUnavailableError",
    "DaemonRequestError",
    "StoreError",
    "StorePersistenceError",
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderResponseError",
    "RuleValidationError",
]
