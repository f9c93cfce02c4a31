"""Custom exceptions for the storefront application."""


class StorefrontError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(StorefrontError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(StorefrontError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class CheckoutPreconditionError(BusinessLogicError):
    """Raised before any network call when the checkout cannot start."""


class CouponError(BusinessLogicError):
    """Raised when a coupon cannot be applied to the current order."""


class PaymentGatewayError(StorefrontError):
    """Raised when the payment gateway fails or rejects a payment. Never retried."""
    def __init__(self, message="Payment gateway error", payload=None):
        super().__init__(message, 502, payload)
