#!/usr/bin/env python3
"""
Configuration for the UnoPim catalog agent.

This module manages UnoPim connection settings, OAuth2 credentials,
catalog defaults (locale, channel, currency) and agent settings.
Values come from the environment, optionally seeded from a .env file.
"""

import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# UnoPim API Configuration
# =============================================================================

REQUIRED_ENV_VARS = (
    "UNOPIM_BASE_URL",
    "UNOPIM_CLIENT_ID",
    "UNOPIM_CLIENT_SECRET",
    "UNOPIM_USERNAME",
    "UNOPIM_PASSWORD",
)

# REST resources live under this prefix, the token endpoint does not
UNOPIM_API_PREFIX: str = "/api/v1/rest"
UNOPIM_TOKEN_PATH: str = "/oauth/token"

# Per-request timeout in seconds
UNOPIM_REQUEST_TIMEOUT: float = float(os.getenv("UNOPIM_REQUEST_TIMEOUT", "30"))


# =============================================================================
# Catalog Defaults
# =============================================================================

DEFAULT_LOCALE: str = os.getenv("UNOPIM_DEFAULT_LOCALE", "en_US")
DEFAULT_CHANNEL: str = os.getenv("UNOPIM_DEFAULT_CHANNEL", "default")
DEFAULT_CURRENCY: str = os.getenv("UNOPIM_DEFAULT_CURRENCY", "USD")


# =============================================================================
# Agent Configuration
# =============================================================================

PIM_AGENT_MODEL: str = os.getenv("PIM_AGENT_MODEL", "claude-sonnet-4-5")

# Maximum tokens for Claude responses
PIM_AGENT_MAX_TOKENS: int = int(os.getenv("PIM_AGENT_MAX_TOKENS", "8192"))

# Maximum iterations for agent loop
PIM_AGENT_MAX_ITERATIONS: int = int(os.getenv("PIM_AGENT_MAX_ITERATIONS", "25"))


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


@dataclass(frozen=True)
class UnoPimSettings:
    """Connection settings for one UnoPim tenant."""
    base_url: str
    client_id: str
    client_secret: str
    username: str
    password: str
    default_locale: str = "en_US"
    default_channel: str = "default"
    default_currency: str = "USD"
    request_timeout: float = 30.0

    def __repr__(self) -> str:
        # Secrets stay out of tracebacks and log lines
        return (
            f"UnoPimSettings(base_url={self.base_url!r}, "
            f"client_id={mask_secret(self.client_id)!r}, username={self.username!r})"
        )


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display, keeping the first and last four characters."""
    if not value or len(value) <= 8:
        return "Not set" if not value else "****"
    return f"{value[:4]}...{value[-4:]}"


def is_valid_url(url: str) -> bool:
    """Check that a URL is absolute http(s)."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def load_settings(env: Optional[Mapping[str, str]] = None) -> UnoPimSettings:
    """
    Load UnoPim settings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        UnoPimSettings with a normalized base URL

    Raises:
        ConfigError: If required variables are missing or the base URL is invalid
    """
    env = os.environ if env is None else env

    problems = [
        f"{name} environment variable is required"
        for name in REQUIRED_ENV_VARS
        if not env.get(name)
    ]

    base_url = (env.get("UNOPIM_BASE_URL") or "").rstrip("/")
    if base_url and not is_valid_url(base_url):
        problems.append(f"UNOPIM_BASE_URL is not a valid http(s) URL: {base_url}")

    timeout_raw = env.get("UNOPIM_REQUEST_TIMEOUT", str(UNOPIM_REQUEST_TIMEOUT))
    try:
        request_timeout = float(timeout_raw)
    except ValueError:
        problems.append(f"UNOPIM_REQUEST_TIMEOUT must be a number of seconds: {timeout_raw}")
        request_timeout = UNOPIM_REQUEST_TIMEOUT

    if problems:
        raise ConfigError(problems)

    return UnoPimSettings(
        base_url=base_url,
        client_id=env["UNOPIM_CLIENT_ID"],
        client_secret=env["UNOPIM_CLIENT_SECRET"],
        username=env["UNOPIM_USERNAME"],
        password=env["UNOPIM_PASSWORD"],
        default_locale=env.get("UNOPIM_DEFAULT_LOCALE", DEFAULT_LOCALE),
        default_channel=env.get("UNOPIM_DEFAULT_CHANNEL", DEFAULT_CHANNEL),
        default_currency=env.get("UNOPIM_DEFAULT_CURRENCY", DEFAULT_CURRENCY),
        request_timeout=request_timeout,
    )


# =============================================================================
# Validation
# =============================================================================

def validate_config() -> UnoPimSettings:
    """
    Validate that all required UnoPim configuration values are present.
    Raises SystemExit if any required values are missing.
    """
    try:
        return load_settings()
    except ConfigError as e:
        print("UnoPim Configuration Error(s):", file=sys.stderr)
        for problem in e.problems:
            print(f"  - {problem}", file=sys.stderr)
        print("\nPlease set the required environment variables and try again.", file=sys.stderr)
        sys.exit(1)


def get_config_summary(settings: Optional[UnoPimSettings] = None) -> str:
    """
    Get a summary of the current configuration (for logging).
    Sensitive values are masked.
    """
    if settings is None:
        values: Dict[str, Optional[str]] = {
            "base_url": os.getenv("UNOPIM_BASE_URL"),
            "client_id": os.getenv("UNOPIM_CLIENT_ID"),
            "username": os.getenv("UNOPIM_USERNAME"),
            "locale": DEFAULT_LOCALE,
            "channel": DEFAULT_CHANNEL,
            "currency": DEFAULT_CURRENCY,
        }
    else:
        values = {
            "base_url": settings.base_url,
            "client_id": settings.client_id,
            "username": settings.username,
            "locale": settings.default_locale,
            "channel": settings.default_channel,
            "currency": settings.default_currency,
        }

    return f"""
UnoPim Catalog Agent Configuration:
  API:
    - Base URL: {values['base_url'] or 'Not set'}
    - Client ID: {mask_secret(values['client_id'])}
    - Username: {values['username'] or 'Not set'}

  Catalog Defaults:
    - Locale: {values['locale']}
    - Channel: {values['channel']}
    - Currency: {values['currency']}

  Agent:
    - Model: {PIM_AGENT_MODEL}
    - Max Tokens: {PIM_AGENT_MAX_TOKENS}
    - Max Iterations: {PIM_AGENT_MAX_ITERATIONS}
"""


if __name__ == "__main__":
    print("Validating UnoPim configuration...")
    validate_config()
    print("UnoPim configuration is valid!")
    print(get_config_summary())
