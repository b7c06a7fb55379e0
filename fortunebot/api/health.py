"""
Health and diagnostics API.

Lightweight endpoints for uptime probes and deployment checks; secrets
are reported as configured/not configured only.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from fortunebot.api.webhook import get_dispatcher
from fortunebot.core.config import settings
from fortunebot.core.errors import CompletionError, CompletionQuotaError

logger = logging.getLogger("fortunebot")

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
def root():
    return "OK"


@router.get("/health", response_class=PlainTextResponse)
def health():
    return "healthy"


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/env")
def env_report():
    return {
        "env": settings.ENV,
        "model": settings.LLM_MODEL,
        "gating_enabled": settings.GATING_ENABLED,
        "store": "redis" if settings.REDIS_URL else "memory",
        "line_access_token": bool(settings.LINE_CHANNEL_ACCESS_TOKEN),
        "line_channel_secret": bool(settings.LINE_CHANNEL_SECRET),
        "groq_api_key": bool(settings.GROQ_API_KEY),
        "stores_api_key": bool(settings.STORES_API_KEY),
    }


@router.get("/ping-llm")
async def ping_llm(request: Request):
    """One short test completion through the app's client; 503 when the completion API is unusable."""
    client = get_dispatcher(request).chat.completions
    try:
        text = await client.ping()
    except (CompletionError, CompletionQuotaError) as e:
        logger.error(f"[ping-llm] failed: {e.message}")
        return JSONResponse(status_code=503, content={"ok": False, "error": e.code, "model": settings.LLM_MODEL})
    return {"ok": True, "model": settings.LLM_MODEL, "reply": text}
