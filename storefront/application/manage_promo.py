import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from storefront.domain.models import DiscountType, PromoCode, PromoCodeUsage
from storefront.domain.promo import normalize_code
from storefront.domain.exceptions import PromoNotFoundError, PromoCodeExistsError, InvalidRequestError

logger = logging.getLogger(__name__)


class PromoCodeDTO(BaseModel):
    code: str
    discount_type: DiscountType = DiscountType.PERCENT
    discount_value: Decimal
    min_cart_value: Decimal = Decimal("0")
    max_discount: Optional[Decimal] = None
    usage_limit: int
    per_user_limit: int = 1
    expiry_date: datetime
    is_active: bool = True


class PromoCodeUpdateDTO(BaseModel):
    """Admin edits. used_count is owned by checkout and is not editable."""
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    min_cart_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    expiry_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class PromoCodeStats(BaseModel):
    promo_code: PromoCode
    usages: List[PromoCodeUsage]
    total_usages: int
    remaining_usages: int
    total_discount_given: Decimal
    unique_users: int


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _check_limits(usage_limit: int, per_user_limit: int) -> None:
    if usage_limit < 1:
        raise InvalidRequestError("Usage limit must be at least 1")
    if per_user_limit < 1:
        raise InvalidRequestError("Per user limit must be at least 1")


def _check_discount(discount_type: DiscountType, value: Decimal) -> None:
    if value <= 0:
        raise InvalidRequestError("Discount value must be positive")
    if discount_type == DiscountType.PERCENT and value > 100:
        raise InvalidRequestError("Percent discount cannot exceed 100")


class CreatePromoCodeUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: PromoCodeDTO) -> PromoCode:
        _check_limits(dto.usage_limit, dto.per_user_limit)
        _check_discount(dto.discount_type, dto.discount_value)

        code = normalize_code(dto.code)
        async with self._uow() as uow:
            if await uow.promo_codes.get_by_code(code):
                raise PromoCodeExistsError()
            promo = PromoCode(
                id=str(uuid.uuid4()),
                **dto.model_dump(exclude={"code", "expiry_date"}),
                code=code,
                expiry_date=_utc(dto.expiry_date),
                used_count=0
            )
            await uow.promo_codes.create(promo)
            await uow.commit()
            created = await uow.promo_codes.get_by_id(promo.id)

        logger.info(f"Promo code {code} created")
        return created


class UpdatePromoCodeUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, promo_code_id: str, dto: PromoCodeUpdateDTO) -> PromoCode:
        # only max_discount may be cleared
        values = {
            key: value for key, value in dto.model_dump(exclude_unset=True).items()
            if value is not None or key == "max_discount"
        }
        async with self._uow() as uow:
            promo = await uow.promo_codes.get_by_id(promo_code_id)
            if not promo:
                raise PromoNotFoundError("Promo code not found")

            if values.get("code") is not None:
                values["code"] = normalize_code(values["code"])
                if values["code"] != promo.code and await uow.promo_codes.get_by_code(values["code"]):
                    raise PromoCodeExistsError()

            if values.get("expiry_date") is not None:
                values["expiry_date"] = _utc(values["expiry_date"])

            usage_limit = values.get("usage_limit", promo.usage_limit)
            _check_limits(usage_limit, values.get("per_user_limit", promo.per_user_limit))
            _check_discount(
                values.get("discount_type", promo.discount_type),
                values.get("discount_value", promo.discount_value)
            )
            if usage_limit < promo.used_count:
                raise InvalidRequestError(
                    f"Usage limit cannot be lower than the {promo.used_count} redemptions already made"
                )

            await uow.promo_codes.update(promo.id, values)
            await uow.commit()
            updated = await uow.promo_codes.get_by_id(promo.id)

        logger.info(f"Promo code {updated.code} updated: {sorted(values)}")
        return updated


class DeactivatePromoCodeUseCase:
    """Logical delete, history stays attributable"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, promo_code_id: str) -> None:
        async with self._uow() as uow:
            promo = await uow.promo_codes.get_by_id(promo_code_id)
            if not promo:
                raise PromoNotFoundError("Promo code not found")
            await uow.promo_codes.update(promo.id, {"is_active": False})
            await uow.commit()
        logger.info(f"Promo code {promo.code} deactivated")


class ListPromoCodesUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[PromoCode]:
        async with self._uow() as uow:
            return await uow.promo_codes.list_all()


class GetPromoCodeStatsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, promo_code_id: str) -> PromoCodeStats:
        async with self._uow() as uow:
            promo = await uow.promo_codes.get_by_id(promo_code_id)
            if not promo:
                raise PromoNotFoundError("Promo code not found")
            usages = await uow.promo_usages.list_for_code(promo.id)

        return PromoCodeStats(
            promo_code=promo,
            usages=usages,
            total_usages=promo.used_count,
            remaining_usages=promo.usage_limit - promo.used_count,
            total_discount_given=sum((u.discount_amount for u in usages), Decimal("0.00")),
            unique_users=len({u.user_id for u in usages})
        )
