"""Promo code rules.

Everything here is pure: callers pass in the code, the user's redemption count
from the usage ledger and the current time. The same functions run for the
read-only validate call and again inside the checkout transaction, against the
state of the code at that moment.
"""
from datetime import datetime
from decimal import Decimal

from storefront.domain.models import PromoCode, DiscountType, DiscountQuote, money
from storefront.domain.exceptions import (
    PromoInactiveError,
    PromoExpiredError,
    PromoLimitReachedError,
    PromoPerUserLimitReachedError,
    PromoBelowMinimumError,
)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def check_redeemable(promo: PromoCode, user_usage_count: int, now: datetime) -> None:
    """Activity, expiry, global cap, per-user cap. Raises on the first failure."""
    if not promo.is_active:
        raise PromoInactiveError()
    if promo.expiry_date < now:
        raise PromoExpiredError()
    if promo.used_count >= promo.usage_limit:
        raise PromoLimitReachedError()
    if user_usage_count >= promo.per_user_limit:
        raise PromoPerUserLimitReachedError()


def compute_discount(promo: PromoCode, cart_total: Decimal) -> Decimal:
    cart_total = money(cart_total)
    if promo.discount_type == DiscountType.PERCENT:
        discount = money(cart_total * promo.discount_value / 100)
    else:
        discount = min(money(promo.discount_value), cart_total)
    if promo.max_discount is not None:
        discount = min(discount, money(promo.max_discount))
    return max(discount, Decimal("0.00"))


def evaluate(promo: PromoCode, user_usage_count: int, cart_total: Decimal, now: datetime) -> DiscountQuote:
    check_redeemable(promo, user_usage_count, now)
    if cart_total < promo.min_cart_value:
        raise PromoBelowMinimumError(promo.min_cart_value)

    discount = compute_discount(promo, cart_total)
    final_amount = max(money(cart_total) - discount, Decimal("0.00"))
    return DiscountQuote(
        promo_code_id=promo.id,
        code=promo.code,
        discount=discount,
        final_amount=final_amount,
    )
