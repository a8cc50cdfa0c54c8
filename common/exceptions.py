"""
CafePreorder - Custom Exceptions
=================================
Business-level exceptions that are converted to JSON error responses
by the handler registered in main.py.
"""


class CafePreorderError(Exception):
    """Base exception for all business logic errors."""
    status_code = 400
    code = "error"

    def __init__(self, message: str = "Something went wrong."):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationError(CafePreorderError):
    """Raised for missing or invalid input (e.g. no pickup time)."""
    status_code = 422
    code = "validation_error"


class AuthenticationError(CafePreorderError):
    """Raised when the identity token is missing or invalid."""
    status_code = 401
    code = "authentication_error"


class AuthorizationError(CafePreorderError):
    """Raised when user lacks permission."""
    status_code = 403
    code = "authorization_error"


class NotFoundError(CafePreorderError):
    """Raised when a requested resource doesn't exist (or isn't visible to the caller)."""
    status_code = 404
    code = "not_found"


class OutOfStockError(CafePreorderError):
    """Raised when a menu item is unavailable or has no units left."""
    status_code = 409
    code = "out_of_stock"

    def __init__(self, item_name: str = ""):
        msg = f"{item_name} is out of stock." if item_name else "Item is out of stock."
        super().__init__(msg)


class OrdersClosedError(CafePreorderError):
    """Raised when the canteen is not accepting orders."""
    status_code = 409
    code = "orders_closed"

    def __init__(self, canteen_name: str = ""):
        msg = f"{canteen_name} is not accepting orders right now." if canteen_name else "Canteen is not accepting orders right now."
        super().__init__(msg)


class EmptyCartError(CafePreorderError):
    """Raised when checking out without cart lines."""
    status_code = 409
    code = "empty_cart"

    def __init__(self):
        super().__init__("Your cart is empty.")


class InvalidTransitionError(CafePreorderError):
    """Raised for illegal status changes and conflicting payment confirmations."""
    status_code = 409
    code = "invalid_transition"


class PersistenceError(CafePreorderError):
    """Raised when the store is unreachable or rejects a write."""
    status_code = 503
    code = "persistence_error"

    def __init__(self, message: str = "Could not reach the data store. Please retry."):
        super().__init__(message)


class PaymentFailedError(CafePreorderError):
    """Raised when the gateway rejects or cannot verify a payment."""
    status_code = 402
    code = "payment_failed"


class PaymentAbortedError(CafePreorderError):
    """Raised when the customer abandons the hosted payment flow."""
    status_code = 402
    code = "payment_aborted"

    def __init__(self, message: str = "Payment was cancelled."):
        super().__init__(message)


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError, AuthenticationError, AuthorizationError, NotFoundError,
        OutOfStockError, OrdersClosedError, EmptyCartError, InvalidTransitionError,
        PersistenceError, PaymentFailedError, PaymentAbortedError,
    )
}


def error_from_payload(payload: dict, status_code: int) -> CafePreorderError:
    """Rebuild a business exception from an API error body (used by the sync client)."""
    cls = ERRORS_BY_CODE.get(payload.get("error"), CafePreorderError)
    err = cls.__new__(cls)
    CafePreorderError.__init__(err, payload.get("message") or f"HTTP {status_code}")
    return err
