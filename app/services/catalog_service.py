"""
app/services/catalog_service.py

Purpose: Catalog and purchase engine

- Groups live stock by (name, price) for display
- Adds stock (admin restock)
- Purchase: claim one or more items of a product group, debit the
  total once, count the transaction

Commit order for a purchase is stock first, balance second. Each step
is a compare-and-swap on its own table, so two buyers can never both
claim the same item and a balance is never debited below zero. The
two tables are not updated atomically together: between the steps the
item is already gone while the balance is not yet debited, and a failed
debit puts the item back.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from app.core.exceptions import (
    InsufficientBalanceError,
    PersistenceError,
    StockGoneError,
    UserNotFoundError,
)
from app.core.logging import get_logger, LogContext
from app.db.kv_store import KVStore, Table
from app.models.account import Account, CatalogGroup, Receipt
from app.services.audit_service import AuditService
from app.services.config_service import ShopConfigService
from app.services.user_service import UserService
from utils.constants import LOG_PURCHASE
from utils.format_utils import format_rupiah, h
from utils.time_utils import utc_now

logger = get_logger(__name__)


def group_accounts(accounts: Dict[str, dict]) -> List[CatalogGroup]:
    """
    Groups accounts by (name, price), sorted by name. Groups with the
    same name keep the order in which they first appear.
    """
    groups: Dict[Tuple[str, int], CatalogGroup] = {}
    for key, raw in accounts.items():
        name, price = raw.get("name", ""), int(raw.get("price", 0))
        group = groups.get((name, price))
        if group is None:
            groups[(name, price)] = CatalogGroup(name=name, price=price, count=1, sample_key=key)
        else:
            group.count += 1

    return sorted(groups.values(), key=lambda group: group.name)


def group_keys(accounts: Dict[str, dict], account_key: str) -> List[str]:
    """
    Keys of every account in account_key's (name, price) group, with
    account_key first and the rest in stock order.
    """
    raw = accounts[account_key]
    name, price = raw.get("name", ""), int(raw.get("price", 0))
    return [account_key] + [
        key for key, other in accounts.items()
        if key != account_key and other.get("name", "") == name and int(other.get("price", 0)) == price
    ]


def _check_available(account_key: str, keys: List[str], quantity: int):
    if len(keys) < quantity:
        raise StockGoneError(
            "Not enough stock",
            details={"account": account_key, "available": len(keys), "requested": quantity}
        )


class CatalogService:

    def __init__(
        self,
        store: KVStore,
        users: UserService,
        shop_config: ShopConfigService,
        audit: AuditService,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.users = users
        self.shop_config = shop_config
        self.audit = audit
        self.clock = clock

    async def list_grouped(self) -> List[CatalogGroup]:
        return group_accounts(await self.store.get(Table.ACCOUNTS))

    async def get_account(self, account_key: str) -> Optional[Account]:
        raw = (await self.store.get(Table.ACCOUNTS)).get(account_key)
        return Account.model_validate(raw) if raw else None

    async def get_group(self, account_key: str) -> Optional[Tuple[Account, CatalogGroup]]:
        """
        Looks up an account and the catalog group it belongs to.
        """
        accounts = await self.store.get(Table.ACCOUNTS)
        raw = accounts.get(account_key)
        if not raw:
            return None

        account = Account.model_validate(raw)
        for group in group_accounts(accounts):
            if group.name == account.name and group.price == account.price:
                return account, group
        return None

    async def stock_count(self) -> int:
        return len(await self.store.get(Table.ACCOUNTS))

    async def add_accounts(self, accounts: List[Account]) -> Tuple[List[str], List[str]]:
        """
        Adds accounts; emails already in stock are skipped.

        Returns:
            (added_keys, skipped_keys)
        """
        now = self.clock()

        def apply(doc: dict) -> Tuple[List[str], List[str]]:
            added, skipped = [], []
            for account in accounts:
                if account.email in doc or account.email in added:
                    skipped.append(account.email)
                    continue
                account.created_at = account.created_at or now
                doc[account.email] = account.to_doc()
                added.append(account.email)
            return added, skipped

        return await self.store.update(Table.ACCOUNTS, apply)

    async def purchase(self, user_id: str, account_key: str) -> Receipt:
        """Buys the single stock item account_key."""
        return await self.purchase_many(user_id, account_key, 1)

    async def purchase_many(self, user_id: str, account_key: str, quantity: int = 1) -> Receipt:
        """
        Buys `quantity` items of the product group that account_key belongs
        to, paying quantity x price in a single debit. account_key itself
        is delivered first; the rest come from the same (name, price) group.

        Raises:
            StockGoneError: Item no longer exists, or its group holds fewer
                than `quantity` items (details["available"] is then set);
                checked again at commit
            UserNotFoundError: User never sent /start
            InsufficientBalanceError: Balance lower than the total
            PersistenceError: Store unavailable
        """
        with LogContext(user_id=user_id, action="purchase"):
            accounts, _ = await self.store.get_versioned(Table.ACCOUNTS)
            raw = accounts.get(account_key)
            if not raw:
                raise StockGoneError(details={"account": account_key})
            account = Account.model_validate(raw)
            _check_available(account_key, group_keys(accounts, account_key), quantity)

            total = account.price * quantity
            user = await self.users.get_user(user_id, strict=True)
            if user is None:
                raise UserNotFoundError(details={"user_id": user_id})
            if user.balance < total:
                raise InsufficientBalanceError(details={"balance": user.balance, "required": total})

            def claim(doc: dict) -> List[Account]:
                if account_key not in doc:
                    raise StockGoneError(details={"account": account_key})
                keys = group_keys(doc, account_key)
                _check_available(account_key, keys, quantity)
                return [Account.model_validate(doc.pop(key)) for key in keys[:quantity]]

            claimed = await self.store.update(Table.ACCOUNTS, claim)

            try:
                user = await self.users.debit(user_id, total)
            except (UserNotFoundError, InsufficientBalanceError, PersistenceError):
                await self._restore(claimed)
                raise

            try:
                await self.shop_config.increment_transactions()
            except PersistenceError as e:
                logger.error(f"Transaction counter not incremented: {e.message}")

            emails = [item.email for item in claimed]
            logger.info(
                f"Purchase completed: {quantity} x {account.name} for {total} ({', '.join(emails)})",
                extra={"user_id": user_id}
            )

            self.audit.log_later(LOG_PURCHASE, [
                f"User: {h(user.display_name)} (ID: {user_id})",
                f"Product: {h(account.name)}",
                f"Quantity: {quantity}",
                f"Accounts: {h(', '.join(emails))}",
                f"Total: {format_rupiah(total)}",
                f"Balance left: {format_rupiah(user.balance)}",
            ])

            return Receipt(
                user_id=user_id,
                accounts=claimed,
                price=account.price,
                total=total,
                balance_after=user.balance,
            )

    async def _restore(self, claimed: List[Account]):
        """Puts claimed items back after a failed debit."""
        def apply(doc: dict):
            for account in claimed:
                doc.setdefault(account.email, account.to_doc())

        try:
            await self.store.update(Table.ACCOUNTS, apply)
            logger.info(f"Stock restored after failed debit: {', '.join(a.email for a in claimed)}")
        except PersistenceError as e:
            logger.critical(
                f"Stock lost after failed debit, restore manually: {[a.to_doc() for a in claimed]}",
                exc_info=e
            )
