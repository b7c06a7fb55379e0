"""
Environment validation utilities.

Ensures the service fails fast on misconfiguration at boot while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional, Iterable
from urllib.parse import urlparse

from fortunebot.core.config import settings


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required in production")


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to fortunebot.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()

    redis_url = getattr(cfg, "REDIS_URL", None)
    if redis_url and not _is_valid_url(redis_url):
        raise EnvValidationError("REDIS_URL must be a valid URL (e.g. redis://host:6379/0)")

    for name in ("ORDER_API_BASE", "LINE_API_BASE"):
        value = getattr(cfg, name, None)
        if value and not _is_valid_url(value):
            raise EnvValidationError(f"{name} must be an absolute URL")

    history_max = getattr(cfg, "HISTORY_MAX_TURNS", 12)
    context_turns = getattr(cfg, "PROMPT_CONTEXT_TURNS", 6)
    if history_max < 1 or context_turns < 1:
        raise EnvValidationError("HISTORY_MAX_TURNS and PROMPT_CONTEXT_TURNS must be positive")

    if mode == "production":
        required_prod = [
            "LINE_CHANNEL_ACCESS_TOKEN",
            "LINE_CHANNEL_SECRET",
            "GROQ_API_KEY",
            "REDIS_URL",
        ]
        if getattr(cfg, "GATING_ENABLED", True):
            required_prod.append("STORES_API_KEY")
        _require(required_prod, cfg)

    return True
