"""
app/services/user_service.py

Purpose: User data management

- Register users on /start
- Balance debit / credit / admin adjustment
- Ban flag persistence
- User listing for broadcast and status counters
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

from app.core.exceptions import InsufficientBalanceError, UserNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.kv_store import KVStore, Table
from app.models.user import User
from utils.time_utils import utc_now

logger = get_logger(__name__)


class UserService:

    def __init__(self, store: KVStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def _new_user(self, user_id: str, username: Optional[str] = None) -> User:
        return User(id=user_id, balance=0, joinedAt=self.clock(), isBanned=False, username=username)

    async def get_user(self, user_id: str, strict: bool = False) -> Optional[User]:
        """
        Retrieves a user by id.

        Args:
            user_id: Telegram user id
            strict: Propagate PersistenceError instead of treating a failed read as "no user"

        Returns:
            User or None if not found
        """
        if strict:
            users, _ = await self.store.get_versioned(Table.USERS)
        else:
            users = await self.store.get(Table.USERS)

        raw = users.get(user_id)
        return User.model_validate(raw) if raw else None

    async def register(self, user_id: str, username: Optional[str] = None) -> Tuple[User, bool]:
        """
        Creates the user on first contact, refreshing the username otherwise.

        Returns:
            (user, created)
        """
        def apply(users: dict) -> Tuple[User, bool]:
            raw = users.get(user_id)
            if raw:
                user = User.model_validate(raw)
                if username and user.username != username:
                    user.username = username
                    users[user_id] = user.to_doc()
                return user, False

            user = self._new_user(user_id, username)
            users[user_id] = user.to_doc()
            return user, True

        with LogContext(user_id=user_id):
            user, created = await self.store.update(Table.USERS, apply)
            if created:
                logger.info("New user registered", extra={"user_id": user_id})
            return user, created

    async def debit(self, user_id: str, amount: int) -> User:
        """
        Subtracts amount from the balance, re-checking it against the
        freshest copy of the users table.

        Raises:
            UserNotFoundError: If the user does not exist
            InsufficientBalanceError: If the balance is lower than amount
        """
        def apply(users: dict) -> User:
            raw = users.get(user_id)
            if not raw:
                raise UserNotFoundError(details={"user_id": user_id})
            user = User.model_validate(raw)
            if user.balance < amount:
                raise InsufficientBalanceError(details={"balance": user.balance, "required": amount})
            user.balance -= amount
            users[user_id] = user.to_doc()
            return user

        return await self.store.update(Table.USERS, apply)

    async def credit(self, user_id: str, amount: int) -> User:
        """
        Adds amount to the balance; creates the user record if it vanished.
        """
        def apply(users: dict) -> User:
            raw = users.get(user_id)
            user = User.model_validate(raw) if raw else self._new_user(user_id)
            user.balance += amount
            users[user_id] = user.to_doc()
            return user

        return await self.store.update(Table.USERS, apply)

    async def adjust_balance(self, user_id: str, delta: int) -> User:
        """
        Applies a signed adjustment. The result may not go below zero.

        Raises:
            UserNotFoundError: If the user does not exist
            InsufficientBalanceError: If the adjustment would go negative
        """
        def apply(users: dict) -> User:
            raw = users.get(user_id)
            if not raw:
                raise UserNotFoundError(details={"user_id": user_id})
            user = User.model_validate(raw)
            if user.balance + delta < 0:
                raise InsufficientBalanceError(details={"balance": user.balance, "delta": delta})
            user.balance += delta
            users[user_id] = user.to_doc()
            return user

        return await self.store.update(Table.USERS, apply)

    async def set_banned(self, user_id: str, banned: bool, reason: Optional[str] = None) -> User:
        """
        Sets or clears the ban flag, creating the user record when absent.
        """
        def apply(users: dict) -> User:
            raw = users.get(user_id)
            user = User.model_validate(raw) if raw else self._new_user(user_id)
            user.is_banned = banned
            user.ban_reason = reason if banned else None
            users[user_id] = user.to_doc()
            return user

        with LogContext(user_id=user_id):
            user = await self.store.update(Table.USERS, apply)
            logger.info("Ban flag updated", extra={"user_id": user_id, "banned": banned})
            return user

    async def list_user_ids(self) -> List[str]:
        return list((await self.store.get(Table.USERS)).keys())

    async def count_users(self) -> int:
        return len(await self.store.get(Table.USERS))

    async def list_banned(self) -> List[User]:
        users = await self.store.get(Table.USERS)
        return [User.model_validate(raw) for raw in users.values() if raw.get("isBanned")]
