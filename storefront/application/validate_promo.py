import logging
from datetime import datetime, timezone
from decimal import Decimal

from storefront.domain.models import DiscountQuote
from storefront.domain.promo import normalize_code, evaluate
from storefront.domain.exceptions import PromoNotFoundError, InvalidRequestError

logger = logging.getLogger(__name__)


class ValidatePromoCodeUseCase:
    """Read-only quote for the checkout page. Nothing is redeemed here."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, code: str, user_id: str, cart_total: Decimal) -> DiscountQuote:
        if not code or not code.strip():
            raise InvalidRequestError("Promo code and cart total are required")
        if cart_total <= 0:
            raise InvalidRequestError("Cart total must be greater than 0")

        async with self._uow() as uow:
            promo = await uow.promo_codes.get_by_code(normalize_code(code))
            if not promo:
                raise PromoNotFoundError()
            used = await uow.promo_usages.count_for(promo.id, user_id)

        quote = evaluate(promo, used, cart_total, datetime.now(timezone.utc))
        logger.info(f"Promo {promo.code} quoted for user {user_id}: discount {quote.discount}")
        return quote
