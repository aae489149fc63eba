"""Unified secret access for the quote pipeline.

Secrets come from environment variables (optionally populated from a .env
file by config.settings).

Usage:
    from config.secrets import get_openai_api_key, get_secret

    api_key = get_openai_api_key()
    custom_secret = get_secret('MY_SECRET_NAME')
"""

import os
from functools import lru_cache
from typing import Optional

import structlog

logger = structlog.get_logger()


def get_secret(secret_id: str) -> Optional[str]:
    """
    Get a secret from the process environment.

    Args:
        secret_id: The name of the secret (e.g., 'OPENAI_API_KEY')

    Returns:
        The secret value, or None if not found
    """
    value = os.environ.get(secret_id)
    if not value:
        logger.debug("secret_not_found", secret_id=secret_id)
    return value or None


@lru_cache(maxsize=1)
def get_openai_api_key() -> Optional[str]:
    """Get the OpenAI API key used by the category splitter."""
    return get_secret('OPENAI_API_KEY')


@lru_cache(maxsize=1)
def get_pricing_oracle_api_key() -> Optional[str]:
    """Get the bearer token for the external pricing oracle."""
    return get_secret('PRICING_ORACLE_API_KEY')


def clear_secret_cache() -> None:
    """Clear cached secrets (useful for testing)."""
    get_openai_api_key.cache_clear()
    get_pricing_oracle_api_key.cache_clear()
