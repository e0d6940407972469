"""
app/services/telegram_service.py

Purpose: Telegram Bot API client

- sendMessage / sendPhoto / editMessageText / editMessageCaption
- answerCallbackQuery (toasts and alerts)
- Every call returns a result dict; failures are logged, never raised
"""

import httpx
from typing import Dict, Any, Optional
from app.core.config import Settings
from app.core.exceptions import DeliveryError
from app.core.logging import get_logger

logger = get_logger(__name__)


class TelegramService:
    """Service for calling the Telegram Bot API over HTTPS"""

    def __init__(self, config: Settings, client: Optional[httpx.AsyncClient] = None):
        self.token = config.BOT_TOKEN
        self.base_url = f"{config.TELEGRAM_API_BASE.rstrip('/')}/bot{self.token}"
        self.timeout = config.TELEGRAM_TIMEOUT
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Calls a Bot API method.

        Returns:
            {
                "success": True/False,
                "result": Bot API result (on success),
                "error": "Optional error message"
            }
        """
        try:
            response = await self._get_client().post(f"{self.base_url}/{method}", json=payload)

            try:
                body = response.json()
            except ValueError:
                body = {}

            if response.status_code != 200 or not body.get("ok"):
                raise DeliveryError(
                    f"{method} failed: {response.status_code} {body.get('description', response.text[:200])}",
                    details={"method": method, "status": response.status_code}
                )

            return {"success": True, "result": body.get("result")}

        except DeliveryError as e:
            logger.error(f"❌ Telegram API error: {e.message}")
            return {"success": False, "error": e.message}
        except httpx.TimeoutException:
            logger.error(f"Telegram API timeout on {method}")
            return {"success": False, "error": "Telegram API timeout"}
        except httpx.HTTPError as e:
            logger.error(f"Network error calling {method}: {e}")
            return {"success": False, "error": str(e)}

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("sendMessage", payload)

    async def send_photo(
        self,
        chat_id: str,
        photo: str,
        caption: str = "",
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "photo": photo, "caption": caption, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("sendPhoto", payload)

    async def edit_message_text(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "message_id": message_id, "text": text, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("editMessageText", payload)

    async def edit_message_caption(
        self,
        chat_id: str,
        message_id: int,
        caption: str,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "message_id": message_id, "caption": caption, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("editMessageCaption", payload)

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        show_alert: bool = False
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
            payload["show_alert"] = show_alert
        return await self.call("answerCallbackQuery", payload)

    def is_configured(self) -> bool:
        """Check if a bot token is present"""
        return bool(self.token)
