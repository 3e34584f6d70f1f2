# backend/services/errors.py
"""Checkout rejection taxonomy.

Every rejection the pipeline can produce is a ``CheckoutError`` subclass with a
stable machine ``code`` so the storefront can tell the customer what to change
(address, coupon, payment method or cart quantities). ``main.py`` renders them
as ``{"detail": {"code": ..., "message": ..., **details}}``.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    code = "CHECKOUT_ERROR"
    status_code = 400
    message = "Checkout failed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        # ``code`` always names the rejection, never a detail field
        return {**self.details, "code": self.code, "message": self.message}


# --- Address / service area ---

class AddressNotFound(CheckoutError):
    code = "ADDRESS_NOT_FOUND"
    status_code = 404
    message = "Address not found"


class AddressNotServiceable(CheckoutError):
    code = "ADDRESS_NOT_SERVICEABLE"
    status_code = 422
    message = "We do not deliver to this postal code yet"


class DeliverySlotUnavailable(CheckoutError):
    code = "DELIVERY_SLOT_UNAVAILABLE"
    status_code = 422
    message = "The chosen delivery slot is not available"


class BelowMinimumOrderValue(CheckoutError):
    code = "BELOW_MINIMUM_ORDER_VALUE"
    status_code = 422
    message = "Order value is below the minimum for this area"


# --- Cart ---

class CartError(CheckoutError):
    pass


class EmptyCart(CartError):
    code = "EMPTY_CART"
    status_code = 422
    message = "Cart is empty"


class InsufficientStock(CartError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409
    message = "Not enough stock for a product in your cart"


class ProductUnavailable(CartError):
    code = "PRODUCT_UNAVAILABLE"
    status_code = 409
    message = "A product in your cart is no longer available"


class CartChanged(CartError):
    code = "CART_CHANGED"
    status_code = 409
    message = "Your cart changed while the order was being placed"


class PriceChanged(CartError):
    code = "PRICE_CHANGED"
    status_code = 409
    message = "The price of a product in your cart has changed"


# --- Coupons ---

class CouponError(CheckoutError):
    status_code = 422


class CouponNotFound(CouponError):
    code = "COUPON_NOT_FOUND"
    message = "Invalid coupon code"


class CouponInactive(CouponError):
    code = "COUPON_INACTIVE"
    message = "This coupon is no longer active"


class CouponExpired(CouponError):
    code = "COUPON_EXPIRED"
    message = "This coupon has expired"


class CouponBelowMinimum(CouponError):
    code = "COUPON_BELOW_MINIMUM"
    message = "Order amount is below the coupon minimum"


class CouponUsageLimitReached(CouponError):
    code = "COUPON_USAGE_LIMIT_REACHED"
    status_code = 409
    message = "Coupon usage limit reached"


class CouponPerUserLimitReached(CouponError):
    code = "COUPON_PER_USER_LIMIT_REACHED"
    status_code = 409
    message = "You have already used this coupon"


# --- Payment ---

class InsufficientWalletBalance(CheckoutError):
    code = "INSUFFICIENT_WALLET_BALANCE"
    status_code = 402
    message = "Insufficient wallet balance"


class PaymentVerificationFailed(CheckoutError):
    code = "PAYMENT_VERIFICATION_FAILED"
    status_code = 400
    message = "Payment could not be verified, the order was cancelled"


class GatewayTimeout(CheckoutError):
    code = "GATEWAY_TIMEOUT"
    status_code = 504
    message = "Payment gateway did not respond in time"


class PaymentGatewayError(CheckoutError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502
    message = "Payment gateway rejected the request"


# --- Orders ---

class OrderNotFound(CheckoutError):
    code = "ORDER_NOT_FOUND"
    status_code = 404
    message = "Order not found"


class InvalidOrderState(CheckoutError):
    code = "INVALID_ORDER_STATE"
    status_code = 409
    message = "Order is not in a state that allows this action"


class InvalidStatusTransition(CheckoutError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409
    message = "Status transition not allowed"


class OrderCommitFailed(CheckoutError):
    code = "ORDER_COMMIT_FAILED"
    status_code = 500
    message = "Could not place the order, nothing was charged"
