"""
app/flow/context.py

Purpose: Wiring of the bot's collaborators

- ShopContext: every service a handler may need, built once per process
- build_context(): production wiring, with injectable store / client / clocks
- Incoming: the normalized view of one update handed to a handler
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from app.core.config import Settings
from app.core.logging import get_logger
from app.db.kv_store import KVStore, MemoryKVStore, MongoKVStore
from app.db.mongo import get_kv_collection
from app.services.admin_service import AdminService
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService
from app.services.background import BackgroundRunner
from app.services.catalog_service import CatalogService
from app.services.config_service import ShopConfigService
from app.services.moderation_service import ModerationService
from app.services.payment_service import PaymentService
from app.services.rate_limiter import RateLimiter
from app.services.session_service import SessionStore
from app.services.telegram_service import TelegramService
from app.services.user_service import UserService
from utils.time_utils import utc_now

logger = get_logger(__name__)


@dataclass
class ShopContext:
    config: Settings
    store: KVStore
    telegram: TelegramService
    background: BackgroundRunner
    sessions: SessionStore
    rate_limiter: RateLimiter
    auth: AuthService
    users: UserService
    shop_config: ShopConfigService
    audit: AuditService
    moderation: ModerationService
    catalog: CatalogService
    payments: PaymentService
    admin: AdminService
    clock: Callable[[], datetime] = utc_now


@dataclass
class Incoming:
    """One user interaction, from a message or a button press."""

    user_id: str
    chat_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    text: str = ""
    argument: Optional[str] = None
    message_id: Optional[int] = None
    is_admin: bool = False

    @property
    def name(self) -> str:
        return self.first_name or self.username or self.user_id


def create_store(config: Settings) -> KVStore:
    if config.KV_BACKEND == "memory":
        logger.warning("Using in-memory KV store; data is lost on restart")
        return MemoryKVStore(config.KV_MAX_CAS_ATTEMPTS)
    return MongoKVStore(get_kv_collection, config.KV_MAX_CAS_ATTEMPTS)


def build_context(
    config: Settings,
    store: Optional[KVStore] = None,
    telegram: Optional[TelegramService] = None,
    clock: Callable[[], datetime] = utc_now,
    session_clock: Callable[[], float] = time.monotonic
) -> ShopContext:
    """
    Builds the service graph.

    Args:
        config: Settings instance
        store: KV store (defaults to the backend named by KV_BACKEND)
        telegram: Bot API client (defaults to a real httpx-backed client)
        clock: Wall clock used for timestamps and payment expiry
        session_clock: Monotonic clock used for session TTLs
    """
    store = store or create_store(config)
    telegram = telegram or TelegramService(config)
    background = BackgroundRunner()

    auth = AuthService(config.ADMIN_ID)
    rate_limiter = RateLimiter(config.SPAM_LIMIT, config.SPAM_WINDOW_MS)
    users = UserService(store, clock)
    shop_config = ShopConfigService(store, config, clock)
    audit = AuditService(telegram, shop_config, config, background)
    moderation = ModerationService(users, rate_limiter, telegram, audit, auth, config)
    catalog = CatalogService(store, users, shop_config, audit, clock)
    payments = PaymentService(store, users, shop_config, telegram, audit, config, clock)
    admin = AdminService(auth, users, catalog, payments, shop_config, rate_limiter, telegram, audit, background)

    return ShopContext(
        config=config,
        store=store,
        telegram=telegram,
        background=background,
        sessions=SessionStore(config.SESSION_TTL_SECONDS, session_clock),
        rate_limiter=rate_limiter,
        auth=auth,
        users=users,
        shop_config=shop_config,
        audit=audit,
        moderation=moderation,
        catalog=catalog,
        payments=payments,
        admin=admin,
        clock=clock,
    )
