import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional


def split_csv(raw: Optional[str]) -> List[str]:
    """Split a comma-separated setting into trimmed, non-empty entries."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # LINE Messaging API
    LINE_CHANNEL_ACCESS_TOKEN: Optional[str] = None
    LINE_CHANNEL_SECRET: Optional[str] = None
    LINE_API_BASE: str = "https://api.line.me"
    LINE_SIGNATURE_REQUIRED: bool = False  # always on when ENV=production
    REPLY_MAX_CHARS: int = 4900

    # Completion API (groq SDK, any OpenAI-compatible endpoint)
    GROQ_API_KEY: Optional[str] = None
    GROQ_BASE_URL: Optional[str] = None
    LLM_MODEL: str = "llama-3.1-8b-instant"
    LLM_TEMPERATURE: float = 0.8
    LLM_TOP_P: float = 0.9
    LLM_MAX_TOKENS: int = 700
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_ATTEMPTS: int = 2
    LLM_RETRY_BACKOFF_SECONDS: float = 1.0

    # Order API (STORES-style)
    STORES_API_KEY: Optional[str] = None
    ORDER_API_BASE: str = "https://api.stores.jp/v1"
    ORDER_API_AUTH_HEADER: str = "X-API-KEY"
    # Accept a lone number-lookup result that carries no order number.
    # Only safe when the API is known to filter by number server-side.
    ORDER_NUMBER_TRUST_SINGLE_RESULT: bool = False
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Key-value store
    REDIS_URL: Optional[str] = None
    STORE_KEY_PREFIX: str = "fortunebot:"
    HISTORY_TTL_SECONDS: int = 30 * 24 * 3600
    ORDER_USAGE_TTL_SECONDS: int = 365 * 24 * 3600

    # Conversation
    HISTORY_MAX_TURNS: int = 12
    PROMPT_CONTEXT_TURNS: int = 6

    # Entitlements
    GATING_ENABLED: bool = True
    DAY_PASS_HOURS: int = 24
    SUBSCRIPTION_REVERIFY: bool = True
    TRIAL_REPEATABLE: bool = True
    SHOP_URL: str = "https://yourshop.stores.jp"

    # Order code recognition
    ORDER_CODE_PREFIX: str = "ST"
    ORDER_NUMERIC_LENGTH: int = 10

    # Plan inference (comma-separated)
    TRIAL_PRODUCT_IDS: str = ""
    DAY_PASS_PRODUCT_IDS: str = ""
    SUBSCRIPTION_PRODUCT_IDS: str = ""
    TRIAL_KEYWORDS: str = "お試し,トライアル,trial,1回鑑定"
    DAY_PASS_KEYWORDS: str = "1日,24時間,デイパス,day pass,daypass"
    SUBSCRIPTION_KEYWORDS: str = "定期,月額,サブスク,subscription"
    TRIAL_MAX_AMOUNT: int = 500
    DAY_PASS_MAX_AMOUNT: int = 1500
    SUBSCRIPTION_MIN_AMOUNT: int = 3000

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("fortunebot")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "LINE_CHANNEL_ACCESS_TOKEN",
        "LINE_CHANNEL_SECRET",
        "GROQ_API_KEY",
    ]
    if getattr(cfg, "GATING_ENABLED", True):
        required_keys.append("STORES_API_KEY")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
