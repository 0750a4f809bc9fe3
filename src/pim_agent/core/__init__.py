"""Core infrastructure: configuration and error taxonomy."""

from pim_agent.core.config import (
    validate_config,
    get_config_summary,
    load_settings,
    ConfigError,
    UnoPimSettings,
)
from pim_agent.core.errors import (
    ErrorCode,
    PimApiError,
    classify_status,
    error_payload,
)

__all__ = [
    "validate_config",
    "get_config_summary",
    "load_settings",
    "ConfigError",
    "UnoPimSettings",
    "ErrorCode",
    "PimApiError",
    "classify_status",
    "error_payload",
]
