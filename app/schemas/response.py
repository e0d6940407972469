from pydantic import BaseModel
from typing import Optional, Any


class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None


class WebhookAck(BaseModel):
    """
    Body returned to Telegram after an update was processed.
    """
    ok: bool = True
    status: str = "processed"


class StatusResponse(BaseModel):
    """
    Aggregate counters for the public status page.
    """
    bot: str
    users: int
    stock: int
    transactions: int
    deployed_at: Optional[str] = None
    uptime_seconds: int
    uptime: str
