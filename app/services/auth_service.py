"""
app/services/auth_service.py

Purpose: Admin authorization

- Single place that decides whether a user id is the shop admin
- Every privileged operation calls require_admin() itself
"""

from app.core.exceptions import AdminOnlyError
from app.core.logging import get_logger

logger = get_logger(__name__)


class AuthService:
    """Exact match against the one configured admin id; no roles."""

    def __init__(self, admin_id: str):
        self.admin_id = (admin_id or "").strip()

    def is_admin(self, user_id) -> bool:
        return bool(self.admin_id) and str(user_id).strip() == self.admin_id

    def require_admin(self, user_id):
        """
        Raises:
            AdminOnlyError: If user_id is not the admin
        """
        if not self.is_admin(user_id):
            logger.warning("Rejected admin operation", extra={"user_id": str(user_id)})
            raise AdminOnlyError(details={"user_id": str(user_id)})
