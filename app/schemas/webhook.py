"""
app/schemas/webhook.py

Purpose: Telegram webhook payload schemas

- Validates incoming Update objects (message / callback_query variants)
- Unknown fields are ignored, missing required ones reject the update
- Helpers to pull the sender and command out of an update
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Tuple


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def key(self) -> str:
        """Stringified id used as the storage key."""
        return str(self.id)


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: Optional[str] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: TelegramChat
    date: Optional[int] = None
    text: Optional[str] = None
    caption: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    """
    Telegram Update as delivered to the webhook.

    Only the message and callback_query variants are handled; any other
    update kind validates but is acknowledged without action.
    """
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "update_id": 10000,
                "message": {
                    "message_id": 1,
                    "from": {"id": 123456, "first_name": "Budi", "username": "budi"},
                    "chat": {"id": 123456, "type": "private"},
                    "text": "/start"
                }
            }
        }
    )

    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None

    @property
    def sender(self) -> Optional[TelegramUser]:
        if self.callback_query:
            return self.callback_query.from_user
        if self.message:
            return self.message.from_user
        return None


def split_command(text: str) -> Tuple[Optional[str], str]:
    """
    Splits "/cmd@BotName arg1 arg2" into ("cmd", "arg1 arg2").

    Returns:
        (None, text) when the text is not a command
    """
    text = (text or "").strip()
    if not text.startswith("/"):
        return None, text

    parts = text.split(None, 1)
    command = parts[0][1:].split("@", 1)[0].lower()
    if not command:
        return None, text
    rest = parts[1] if len(parts) > 1 else ""
    return command, rest.strip()
