"""
app/api/webhook.py

Purpose: Telegram webhook endpoint

- Receives Update objects pushed by Telegram
- Verifies the secret token header when one is configured
- Validates the payload and passes control to the flow dispatcher
- Acknowledges processed updates with 200; a fault that escapes the
  dispatcher is answered with 5xx so Telegram redelivers the update
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.flow.context import ShopContext
from app.flow.dispatcher import dispatch_update
from app.schemas.response import WebhookAck
from app.schemas.webhook import TelegramUpdate

logger = get_logger(__name__)
router = APIRouter()


def get_context(request: Request) -> ShopContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Bot is not initialized")
    return context


@router.post("/webhook", response_model=WebhookAck)
async def telegram_webhook(
    request: Request,
    ctx: ShopContext = Depends(get_context),
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
):
    """
    Telegram webhook endpoint

    Telegram sends the secret configured via setWebhook in the
    X-Telegram-Bot-Api-Secret-Token header.
    """
    secret = ctx.config.WEBHOOK_SECRET
    if secret and not hmac.compare_digest(x_telegram_bot_api_secret_token or "", secret):
        logger.warning("Webhook call with invalid secret token")
        raise AuthenticationError("Invalid webhook secret token")

    try:
        payload = await request.json()
        update = TelegramUpdate.model_validate(payload)
    except (ValueError, PydanticValidationError) as e:
        logger.warning(f"Rejected malformed update: {e}")
        raise HTTPException(status_code=400, detail="Invalid update payload")

    logger.info(f"📨 Update {update.update_id} received")

    # Faults escaping dispatch reach the global handlers (5xx) so Telegram redelivers
    result = await dispatch_update(update, ctx)
    return WebhookAck(status=result.get("status", "processed"))


@router.get("/webhook")
async def webhook_verification():
    """
    Liveness of the webhook endpoint
    """
    return {"status": "ok", "message": "Webhook endpoint is active"}
