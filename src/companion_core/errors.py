"""
Error types for the companion core.

Two families:
- Recoverable: storage failures while flushing. Pending data is kept and a
  later flush retries it.
- Fatal at startup: configuration mistakes (bad stage bands, invalid decay
  rates). These indicate a programming error, not a runtime condition.

Everything else (out-of-range numbers, unknown events, malformed achievement
conditions) is corrected or logged, never raised.
"""


class CompanionError(Exception):
    """Base class for companion core errors."""
    pass


class StorageError(CompanionError):
    """Storage read/write failed. Recoverable - retry with the same data."""
    pass


class ConfigurationError(CompanionError):
    """Invalid static configuration. Raised once, at startup."""
    pass


class StageConfigurationError(ConfigurationError):
    """Growth stage bands are not contiguous or do not cover [0, 100]."""
    pass
