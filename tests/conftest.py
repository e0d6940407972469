import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.core.config import Settings
from app.core.exceptions import PersistenceError
from app.db.kv_store import MemoryKVStore, Table
from app.flow.context import build_context
from app.models.account import Account
from app.schemas.webhook import TelegramUpdate
from app.services.telegram_service import TelegramService

ADMIN_ID = "999"
START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class Ticker:
    """Monotonic clock for session TTLs."""

    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


class YieldingKVStore(MemoryKVStore):
    """Gives other tasks a chance to run between read and write."""

    async def _read(self, table: Table):
        await asyncio.sleep(0)
        return await super()._read(table)


class BrokenKVStore(MemoryKVStore):
    """Backend that fails every call while `broken` is set."""

    def __init__(self):
        super().__init__()
        self.broken = False

    async def _read(self, table: Table):
        if self.broken:
            raise PersistenceError("backend down")
        return await super()._read(table)

    async def _write(self, table, doc, expected_version):
        if self.broken:
            raise PersistenceError("backend down")
        return await super()._write(table, doc, expected_version)


class RecordingTelegram(TelegramService):
    """
    Records every Bot API call instead of sending it. Chats listed in
    `unreachable` fail like a user who blocked the bot.
    """

    def __init__(self, config: Settings):
        super().__init__(config)
        self.calls: List[tuple] = []
        self.unreachable = set()
        self._message_id = 100

    async def call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((method, payload))
        if str(payload.get("chat_id")) in self.unreachable:
            return {"success": False, "error": "Forbidden: bot was blocked by the user"}
        self._message_id += 1
        return {"success": True, "result": {"message_id": self._message_id}}

    def to(self, chat_id: str, method: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            payload for name, payload in self.calls
            if str(payload.get("chat_id")) == str(chat_id) and (method is None or name == method)
        ]

    def texts(self, chat_id: str) -> List[str]:
        return [payload.get("text") or payload.get("caption") or "" for payload in self.to(chat_id)]

    def methods(self) -> List[str]:
        return [name for name, _ in self.calls]

    def reset(self):
        self.calls.clear()


def make_settings(**overrides) -> Settings:
    values = dict(
        ENVIRONMENT="development",
        BOT_TOKEN="test-token",
        ADMIN_ID=ADMIN_ID,
        ADMIN_USERNAME="shopadmin",
        KV_BACKEND="memory",
        BONUS_PERCENTAGE=10,
        DEPOSIT_MIN=10000,
        DEPOSIT_MAX=10000000,
        PAYMENT_TTL_MINUTES=15,
        SPAM_LIMIT=5,
        SPAM_WINDOW_MS=5000,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_account(email: str, name: str = "Netflix Premium", price: int = 50000) -> Account:
    return Account(email=email, name=name, price=price, password="secret", description="1 month", note="no sharing")


def message_update(user_id: int, text: str, update_id: int = 1, username: str = "buyer") -> TelegramUpdate:
    return TelegramUpdate.model_validate({
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "from": {"id": user_id, "is_bot": False, "first_name": "Budi", "username": username},
            "chat": {"id": user_id, "type": "private"},
            "text": text,
        },
    })


def callback_update(user_id: int, data: str, update_id: int = 1, message_id: int = 50) -> TelegramUpdate:
    return TelegramUpdate.model_validate({
        "update_id": update_id,
        "callback_query": {
            "id": f"cb{update_id}",
            "from": {"id": user_id, "is_bot": False, "first_name": "Budi", "username": "buyer"},
            "message": {"message_id": message_id, "chat": {"id": user_id, "type": "private"}},
            "data": data,
        },
    })


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ticker():
    return Ticker()


@pytest.fixture
def store():
    return YieldingKVStore()


@pytest.fixture
def telegram(settings):
    return RecordingTelegram(settings)


@pytest.fixture
def ctx(settings, store, telegram, clock, ticker):
    return build_context(settings, store=store, telegram=telegram, clock=clock, session_clock=ticker)


def run(coro):
    return asyncio.run(coro)
