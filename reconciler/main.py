# reconciler/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reconciler.core.config import get_settings
from reconciler.core.exceptions import AuthenticationError, BaseServiceError
from reconciler.core.logging_config import configure_logging
from reconciler.routes import health, notifications, webhooks

configure_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Inventory Event Reconciler",
    description="Keeps sibling stock, restock waitlists and low-stock reports in step with Shopify webhooks",
    version="1.0.0",
)

# Storefront sign-up form posts cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOWED_ORIGINS,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content={"detail": "Unauthorized"})


@app.exception_handler(BaseServiceError)
async def service_error_handler(request: Request, exc: BaseServiceError):
    logger.error("Unhandled service error on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"status": "error", "detail": "An internal error occurred."})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unexpected error on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"status": "error", "detail": "An internal error occurred."})


app.include_router(webhooks.router)
app.include_router(notifications.router)
app.include_router(health.router)
