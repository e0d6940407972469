"""
app/models/payment.py

Purpose: Pending deposit model

- At most one live record per user, keyed by user id
- Removed on confirm, cancel or expiry
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PendingPayment(BaseModel):
    """A deposit waiting for manual confirmation."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    nominal: int = Field(gt=0)
    bonus_amount: int = Field(default=0, ge=0, alias="bonusAmount")
    total_added: int = Field(alias="totalAdded")
    transaction_id: str = Field(alias="transactionId")
    created_at: datetime = Field(alias="createdAt")
    message_id: Optional[int] = Field(default=None, alias="messageId")
    username: Optional[str] = None

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class DepositReceipt(BaseModel):
    """Result of a confirmed deposit."""

    payment: PendingPayment
    balance_after: int
