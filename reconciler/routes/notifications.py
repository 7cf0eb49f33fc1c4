import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from reconciler.core.exceptions import BaseServiceError
from reconciler.dependencies import get_notifier, get_waitlist_service
from reconciler.schemas.events import NotificationRequest
from reconciler.services.notification_service import EmailNotificationService
from reconciler.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/api/request-notification")
async def request_notification(
    request: Request,
    waitlist: WaitlistService = Depends(get_waitlist_service),
    notifier: EmailNotificationService = Depends(get_notifier),
):
    """Storefront form: add a customer to a variant's back-in-stock waitlist"""
    try:
        payload = await request.json()
        notification = NotificationRequest.model_validate(payload)
    except (json.JSONDecodeError, ValueError, ValidationError):
        return _error(400, "Invalid request body.")

    if notification.missing_fields():
        return _error(400, "Missing required fields.")
    if "@" not in notification.email:
        return _error(400, "Invalid email address.")

    try:
        await asyncio.to_thread(waitlist.add_request, notification)
    except BaseServiceError as exc:
        logger.error("Error saving notification request for variant %s: %s", notification.variant_id, exc)
        return _error(500, "Internal Server Error")

    try:
        await asyncio.to_thread(notifier.send_waitlist_signup_alert, notification)
    except BaseServiceError as exc:
        logger.warning("Owner sign-up alert failed for variant %s: %s", notification.variant_id, exc)

    return {"success": True, "message": "Notification request saved."}
