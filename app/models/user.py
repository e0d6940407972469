"""
app/models/user.py

Purpose: User document model

- Telegram user id (stringified) as key
- Balance in whole currency units
- Ban flag and reason
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A registered customer, stored under users[<id>]."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    balance: int = Field(default=0, ge=0)
    joined_at: datetime = Field(alias="joinedAt")
    is_banned: bool = Field(default=False, alias="isBanned")
    username: Optional[str] = None
    ban_reason: Optional[str] = Field(default=None, alias="banReason")

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @property
    def display_name(self) -> str:
        return f"@{self.username}" if self.username else self.id
