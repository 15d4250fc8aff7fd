"""
Custom error classes for CRM Pulse.
Structured error handling with error codes across the analytics engine.

The engine never raises for data-quality problems (missing fields, bad
timestamps, empty groups). These errors are reserved for caller-level
contract violations and for the runner's file loading.

Hierarchy:
    EngineError
    └── DataError
        ├── ConfigError
        ├── InputContractError
        └── DataFetchError
"""


class EngineError(Exception):
    """Base exception for all CRM Pulse errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- Data Errors ---

class DataError(EngineError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Engine configuration is invalid."""

    def __init__(self, message: str, config_path: str = None, errors: list = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"config_path": config_path, "errors": errors or []},
        )


class InputContractError(DataError):
    """A record collection handed to the engine is not a collection of records."""

    def __init__(self, message: str, collection: str = None):
        super().__init__(
            message, code="INPUT_CONTRACT", details={"collection": collection},
        )


class DataFetchError(DataError):
    """Failed to load raw exports from storage."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )
