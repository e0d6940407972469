"""
app/models/shop_config.py

Purpose: Singleton shop configuration document
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ShopConfig(BaseModel):
    """Stored as the whole `config` table."""

    model_config = ConfigDict(populate_by_name=True)

    bonus_percentage: float = Field(default=0.0, ge=0, alias="bonusPercentage")
    total_transactions: int = Field(default=0, ge=0, alias="totalTransactions")
    deployment_timestamp: Optional[datetime] = Field(default=None, alias="deploymentTimestamp")
    log_channel_id: Optional[str] = Field(default=None, alias="logChannelId")

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
