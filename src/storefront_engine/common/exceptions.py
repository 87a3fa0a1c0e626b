"""Storefront-Engine exception hierarchy.

Every error carries a machine-readable ``code`` and one of six categories.
The API layer maps the category to an HTTP status; services never deal in
status codes.
"""

VALIDATION = "VALIDATION"
NOT_FOUND = "NOT_FOUND"
UNAUTHORIZED = "UNAUTHORIZED"
CONFLICT = "CONFLICT"
UPSTREAM = "UPSTREAM"
INTERNAL = "INTERNAL"


class StorefrontError(Exception):
    """Base exception for all Storefront errors."""

    category = INTERNAL

    def __init__(self, message: str = "", code: str = "STOREFRONT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(StorefrontError):
    """Raised for missing or malformed input."""

    category = VALIDATION

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="VALIDATION_ERROR")


# ── Not found ──

class ProductNotFoundError(StorefrontError):
    category = NOT_FOUND

    def __init__(self, message: str = "Product not found"):
        super().__init__(message, code="PRODUCT_NOT_FOUND")


class PurchaseNotFoundError(StorefrontError):
    category = NOT_FOUND

    def __init__(self, message: str = "Purchase not found"):
        super().__init__(message, code="PURCHASE_NOT_FOUND")


class DiscountNotFoundError(StorefrontError):
    category = NOT_FOUND

    def __init__(self, message: str = "Discount code not found"):
        super().__init__(message, code="DISCOUNT_NOT_FOUND")


class LicenseNotFoundError(StorefrontError):
    category = NOT_FOUND

    def __init__(self, message: str = "License not found"):
        super().__init__(message, code="NOT_FOUND")


class PayoutNotFoundError(StorefrontError):
    category = NOT_FOUND

    def __init__(self, message: str = "Payout not found"):
        super().__init__(message, code="PAYOUT_NOT_FOUND")


# ── Authorization ──

class UnauthorizedError(StorefrontError):
    """Raised when the actor does not own the resource."""

    category = UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED")


# ── Conflicts ──

class InvalidTransitionError(StorefrontError):
    """Raised when a purchase or payout cannot move to the requested status."""

    category = CONFLICT

    def __init__(self, message: str = "Invalid status transition"):
        super().__init__(message, code="INVALID_TRANSITION")


class DiscountRejectedError(StorefrontError):
    """Raised when a discount code cannot be applied."""

    category = CONFLICT

    def __init__(self, message: str = "Invalid discount code"):
        super().__init__(message, code="DISCOUNT_REJECTED")


class LicenseInvalidError(StorefrontError):
    """Raised when a license exists but its purchase is not completed."""

    category = CONFLICT

    def __init__(self, message: str = "License is not valid"):
        super().__init__(message, code="LICENSE_INVALID")


class ActivationLimitError(StorefrontError):
    """Raised when the device activation limit is reached."""

    category = CONFLICT

    def __init__(self, message: str = "Activation limit reached"):
        super().__init__(message, code="ACTIVATION_LIMIT_REACHED")


class ActivationConflictError(StorefrontError):
    """Raised when a concurrent activation of the same device won the race."""

    category = CONFLICT

    def __init__(self, message: str = "Concurrent activation in progress, retry"):
        super().__init__(message, code="ACTIVATION_CONFLICT")


class PayoutRejectedError(StorefrontError):
    """Raised when a payout request breaks the minimum or balance rules."""

    category = CONFLICT

    def __init__(self, message: str = "Payout rejected"):
        super().__init__(message, code="PAYOUT_REJECTED")


# ── Upstream ──

class GatewayError(StorefrontError):
    """Raised when the payment provider rejects or fails a call."""

    category = UPSTREAM

    def __init__(self, message: str = "Payment gateway error", code: str = "GATEWAY_ERROR"):
        super().__init__(message, code=code)


class GatewayTimeoutError(GatewayError):
    """Raised when the payment provider does not answer in time."""

    def __init__(self, message: str = "Payment gateway timed out"):
        super().__init__(message, code="GATEWAY_TIMEOUT")
