import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

# Import after dotenv is loaded
from fortunebot.core.config import settings, validate_config
from fortunebot.core.logging import configure_logging
from fortunebot.core.middleware.request_id import RequestIdMiddleware
from fortunebot.core.middleware.metrics import MetricsMiddleware
from fortunebot.core.validation import validate_env
from fortunebot.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from fortunebot.api import health, metrics, webhook
from fortunebot.features.webhook.service import build_dispatcher

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("fortunebot")
    logger.info("Starting fortunebot...")
    app.state.startup_time = time.time()
    # Tests may pre-install a dispatcher wired to fakes.
    if getattr(app.state, "dispatcher", None) is None:
        app.state.dispatcher = build_dispatcher(settings)
    try:
        yield
    finally:
        dispatcher = getattr(app.state, "dispatcher", None)
        if dispatcher is not None:
            await dispatcher.close()
        logger.info("Stopping fortunebot...")


app = FastAPI(title="fortunebot", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(webhook.router, tags=["webhook"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("fortunebot.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
