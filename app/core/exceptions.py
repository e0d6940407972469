from typing import Optional, Any


class ShopError(Exception):
    """
    Base exception for the shop application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ResourceNotFoundError(ShopError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class AuthenticationError(ShopError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class ValidationError(ShopError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)


class ExternalServiceError(ShopError):
    """
    Raised when an external service (Telegram, MongoDB) fails.
    """
    def __init__(self, message: str = "External service error", code: str = "EXTERNAL_SERVICE_ERROR", details: Optional[Any] = None):
        super().__init__(message, code=code, status_code=502, details=details)


# Domain outcomes. Handlers turn these into a reply for the user.

class StockGoneError(ResourceNotFoundError):
    """The selected stock item was already sold or removed."""
    def __init__(self, message: str = "Stock item is no longer available", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "STOCK_GONE"


class UserNotFoundError(ResourceNotFoundError):
    """The user never registered with /start."""
    def __init__(self, message: str = "User is not registered", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "USER_NOT_FOUND"


class NoPendingPaymentError(ResourceNotFoundError):
    """There is no live pending deposit for the user."""
    def __init__(self, message: str = "No pending payment", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "NO_PENDING_PAYMENT"


class InsufficientBalanceError(ShopError):
    """Balance is lower than the requested amount."""
    def __init__(self, message: str = "Insufficient balance", details: Optional[Any] = None):
        super().__init__(message, code="INSUFFICIENT_BALANCE", status_code=402, details=details)


class InvalidNominalError(ValidationError):
    """Deposit or adjustment amount is not an accepted integer."""
    def __init__(self, message: str = "Invalid nominal", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "INVALID_NOMINAL"


class AdminOnlyError(ShopError):
    """Caller is not the configured admin."""
    def __init__(self, message: str = "Admin only", details: Optional[Any] = None):
        super().__init__(message, code="ADMIN_ONLY", status_code=403, details=details)


class PersistenceError(ExternalServiceError):
    """The key-value backend failed or a write kept conflicting."""
    def __init__(self, message: str = "Persistence failure", details: Optional[Any] = None):
        super().__init__(message, code="PERSISTENCE_FAILURE", details=details)


class DeliveryError(ExternalServiceError):
    """The Telegram Bot API rejected or did not answer a call."""
    def __init__(self, message: str = "Delivery failure", details: Optional[Any] = None):
        super().__init__(message, code="DELIVERY_FAILURE", details=details)
