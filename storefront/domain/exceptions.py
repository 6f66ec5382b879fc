class DomainException(Exception):
    """Base error. `code` is the stable machine-readable reason sent to clients."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# Validation

class InvalidCartError(DomainException):
    """Cart is malformed"""
    code = "INVALID_CART"


class EmptyCartError(InvalidCartError):
    """No order items"""
    code = "EMPTY_CART"


class InvalidRequestError(DomainException):
    """Request is invalid"""
    code = "INVALID_REQUEST"


class PriceChangedError(DomainException):
    code = "PRICE_CHANGED"
    status_code = 409

    def __init__(self, product_id: str, claimed, current):
        self.product_id = product_id
        self.claimed = claimed
        self.current = current
        super().__init__(f"Price of {product_id} changed from {claimed} to {current}, refresh the cart")


# Capacity

class ProductNotFoundError(DomainException):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Book {product_id} not found")


class InsufficientStockError(DomainException):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_id: str, required: int):
        self.product_id = product_id
        self.required = required
        super().__init__(f"Not enough stock for {product_id}, required: {required}")


# Promo codes

class PromoRejectedError(DomainException):
    """Promo code cannot be applied"""
    code = "PROMO_REJECTED"


class PromoNotFoundError(PromoRejectedError):
    """Invalid promo code"""
    code = "PROMO_NOT_FOUND"
    status_code = 404


class PromoInactiveError(PromoRejectedError):
    """This promo code is no longer active"""
    code = "PROMO_INACTIVE"


class PromoExpiredError(PromoRejectedError):
    """This promo code has expired"""
    code = "PROMO_EXPIRED"


class PromoLimitReachedError(PromoRejectedError):
    """This promo code has reached its usage limit"""
    code = "PROMO_LIMIT_REACHED"


class PromoPerUserLimitReachedError(PromoRejectedError):
    """You have already used this promo code the maximum number of times"""
    code = "PROMO_PER_USER_LIMIT_REACHED"


class PromoBelowMinimumError(PromoRejectedError):
    code = "PROMO_BELOW_MINIMUM"

    def __init__(self, min_cart_value):
        self.min_cart_value = min_cart_value
        super().__init__(f"Minimum cart value of {min_cart_value} required")


class PromoCodeExistsError(DomainException):
    """Promo code already exists"""
    code = "PROMO_CODE_EXISTS"
    status_code = 409


# Orders

class OrderNotFoundError(DomainException):
    """Order not found"""
    code = "ORDER_NOT_FOUND"
    status_code = 404


class OrderAccessDeniedError(DomainException):
    """Not authorized to access this order"""
    code = "ORDER_ACCESS_DENIED"
    status_code = 403


class InvalidStatusTransitionError(DomainException):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}")


class OrderPlacementError(DomainException):
    """Order could not be placed, please try again"""
    code = "INTERNAL_ERROR"
    status_code = 500


class CheckoutTimeoutError(DomainException):
    """Checkout took too long and was rolled back, please try again"""
    code = "CHECKOUT_TIMEOUT"
    status_code = 503


# Payments

class PaymentServiceError(DomainException):
    """Payment provider is unavailable"""
    code = "PAYMENT_PROVIDER_ERROR"
    status_code = 502


class PaymentNotConfiguredError(DomainException):
    """Payment service not configured"""
    code = "PAYMENT_NOT_CONFIGURED"
    status_code = 503


class SignatureMismatchError(DomainException):
    """Invalid signature"""
    code = "SIGNATURE_MISMATCH"


class OrderAlreadyPaidError(DomainException):
    """Order is already paid"""
    code = "ORDER_ALREADY_PAID"
    status_code = 409


class PaymentMethodMismatchError(DomainException):
    """Order is not payable online"""
    code = "PAYMENT_METHOD_MISMATCH"
