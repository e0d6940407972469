"""
app/models/account.py

Purpose: Stock item model

- One sellable digital account, keyed by its email
- Deleted by the purchase that consumes it
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    """A stock item, stored under accounts[<email>]."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    name: str
    price: int = Field(gt=0)
    password: str = ""
    description: str = ""
    note: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CatalogGroup(BaseModel):
    """Live accounts sharing the same (name, price)."""

    name: str
    price: int
    count: int
    sample_key: str


class Receipt(BaseModel):
    """Result of a successful purchase of one or more accounts."""

    user_id: str
    accounts: List[Account]
    price: int
    total: int
    balance_after: int

    @property
    def account(self) -> Account:
        return self.accounts[0]

    @property
    def quantity(self) -> int:
        return len(self.accounts)
