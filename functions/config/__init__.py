"""Quote pipeline configuration.

This package contains:
- settings: Environment variables, configuration and matching thresholds
- secrets: Unified secret access (environment backed)
- errors: Custom exceptions and error codes
"""

from config.settings import settings, MatchingThresholds
from config.errors import QuoteError
from config.secrets import get_secret, get_openai_api_key, get_pricing_oracle_api_key

__all__ = [
    "settings",
    "MatchingThresholds",
    "QuoteError",
    "get_secret",
    "get_openai_api_key",
    "get_pricing_oracle_api_key",
]
