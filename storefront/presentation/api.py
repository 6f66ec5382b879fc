import hmac
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database import get_session_factory
from storefront.presentation.schemas import (
    CreateOrderRequest, OrderResponse, UpdateOrderStatusRequest, ValidatePromoRequest, ValidatePromoResponse,
    PromoCodeResponse, PromoStatsResponse, PromoUsageResponse, BookStockResponse,
    CreatePaymentSessionRequest, PaymentSessionResponse, VerifyPaymentRequest, VerifyPaymentResponse,
    ErrorResponse,
)
from storefront.domain.models import CartLine, OrderStatus, ShippingAddress
from storefront.domain.exceptions import DomainException
from storefront.application.create_order import CreateOrderUseCase, CreateOrderDTO
from storefront.application.get_order import GetOrderUseCase, ListMyOrdersUseCase, ListOrdersUseCase
from storefront.application.update_order_status import UpdateOrderStatusUseCase, CancelOrderUseCase
from storefront.application.validate_promo import ValidatePromoCodeUseCase
from storefront.application.manage_promo import (
    CreatePromoCodeUseCase, UpdatePromoCodeUseCase, DeactivatePromoCodeUseCase, ListPromoCodesUseCase,
    GetPromoCodeStatsUseCase, PromoCodeDTO, PromoCodeUpdateDTO,
)
from storefront.application.low_stock import LowStockAlertsUseCase
from storefront.application.payments import (
    CreatePaymentSessionUseCase, VerifyPaymentUseCase, VerifyPaymentDTO,
)
from storefront.application.interfaces import PaymentGateway, NotificationsService
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.config import settings

router = APIRouter()

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _http_error(exc: DomainException) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message})


# Caller identity, set by the gateway in front of the service

async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHENTICATED", "message": "Not authorized, no user"}
        )
    return x_user_id


async def get_is_admin(x_api_key: Optional[str] = Header(None)) -> bool:
    return bool(settings.API_TOKEN and x_api_key and hmac.compare_digest(x_api_key, settings.API_TOKEN))


async def require_admin(is_admin: bool = Depends(get_is_admin)) -> None:
    if not is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "NOT_ADMIN", "message": "Not authorized as an admin"}
        )


# Collaborators built once in the lifespan

def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_notifications_service(request: Request) -> NotificationsService:
    return request.app.state.notifications


def get_dispatcher(request: Request):
    return request.app.state.dispatcher


def get_unit_of_work(session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)):
    return UnitOfWork(session_factory)


# Use case factories

def get_create_order_use_case(
    uow=Depends(get_unit_of_work),
    notifications: NotificationsService = Depends(get_notifications_service),
    dispatcher=Depends(get_dispatcher)
):
    return CreateOrderUseCase(
        uow,
        notifications,
        dispatcher,
        free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD,
        shipping_fee=settings.SHIPPING_FEE,
        timeout=settings.CHECKOUT_TIMEOUT_SECONDS
    )


def get_create_session_use_case(
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    return CreatePaymentSessionUseCase(uow, gateway, settings.CURRENCY, key_id=getattr(gateway, "key_id", ""))


def get_verify_payment_use_case(
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    return VerifyPaymentUseCase(uow, gateway)


# Orders

@router.post(
    "/orders",
    response_model=OrderResponse,
    responses={**ERRORS, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Checkout"""
    try:
        dto = CreateOrderDTO(
            user_id=user_id,
            order_items=[CartLine(**line.model_dump()) for line in request.order_items],
            shipping_address=ShippingAddress(**request.shipping_address.model_dump()),
            payment_method=request.payment_method,
            promo_code_id=request.promo_code_id
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/orders", response_model=List[OrderResponse], responses=ERRORS, dependencies=[Depends(require_admin)])
async def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = 100,
    offset: int = 0,
    uow=Depends(get_unit_of_work)
):
    try:
        orders = await ListOrdersUseCase(uow)(status=status, limit=limit, offset=offset)
        return [OrderResponse.from_domain(order) for order in orders]
    except DomainException as e:
        raise _http_error(e)


@router.get("/orders/mine", response_model=List[OrderResponse])
async def get_my_orders(
    user_id: str = Depends(get_current_user_id),
    uow=Depends(get_unit_of_work)
):
    orders = await ListMyOrdersUseCase(uow)(user_id)
    return [OrderResponse.from_domain(order) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERRORS)
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    is_admin: bool = Depends(get_is_admin),
    uow=Depends(get_unit_of_work)
):
    try:
        order = await GetOrderUseCase(uow)(order_id, user_id, is_admin=is_admin)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.put("/orders/{order_id}/cancel", response_model=OrderResponse, responses=ERRORS)
async def cancel_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    is_admin: bool = Depends(get_is_admin),
    uow=Depends(get_unit_of_work)
):
    """Cancel before shipping; reserved stock goes back on sale"""
    try:
        order = await CancelOrderUseCase(uow)(order_id, user_id, is_admin=is_admin)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.put(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERRORS,
    dependencies=[Depends(require_admin)]
)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    uow=Depends(get_unit_of_work)
):
    try:
        order = await UpdateOrderStatusUseCase(uow)(order_id, request.status, is_admin=True)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


# Promo codes

@router.post("/promo/validate", response_model=ValidatePromoResponse, responses=ERRORS)
async def validate_promo_code(
    request: ValidatePromoRequest,
    user_id: str = Depends(get_current_user_id),
    uow=Depends(get_unit_of_work)
):
    """Quote a discount without redeeming the code"""
    try:
        quote = await ValidatePromoCodeUseCase(uow)(request.code, user_id, request.cart_total)
        return ValidatePromoResponse(
            promo_code_id=quote.promo_code_id,
            code=quote.code,
            discount=quote.discount,
            final_amount=quote.final_amount
        )
    except DomainException as e:
        raise _http_error(e)


@router.get("/admin/promo-codes", response_model=List[PromoCodeResponse], dependencies=[Depends(require_admin)])
async def list_promo_codes(uow=Depends(get_unit_of_work)):
    promos = await ListPromoCodesUseCase(uow)()
    return [PromoCodeResponse.from_domain(promo) for promo in promos]


@router.post(
    "/admin/promo-codes",
    response_model=PromoCodeResponse,
    responses=ERRORS,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def create_promo_code(request: PromoCodeDTO, uow=Depends(get_unit_of_work)):
    try:
        promo = await CreatePromoCodeUseCase(uow)(request)
        return PromoCodeResponse.from_domain(promo)
    except DomainException as e:
        raise _http_error(e)


@router.put(
    "/admin/promo-codes/{promo_code_id}",
    response_model=PromoCodeResponse,
    responses=ERRORS,
    dependencies=[Depends(require_admin)]
)
async def update_promo_code(promo_code_id: str, request: PromoCodeUpdateDTO, uow=Depends(get_unit_of_work)):
    try:
        promo = await UpdatePromoCodeUseCase(uow)(promo_code_id, request)
        return PromoCodeResponse.from_domain(promo)
    except DomainException as e:
        raise _http_error(e)


@router.delete("/admin/promo-codes/{promo_code_id}", responses=ERRORS, dependencies=[Depends(require_admin)])
async def deactivate_promo_code(promo_code_id: str, uow=Depends(get_unit_of_work)):
    try:
        await DeactivatePromoCodeUseCase(uow)(promo_code_id)
        return {"message": "Promo code deactivated successfully"}
    except DomainException as e:
        raise _http_error(e)


@router.get(
    "/admin/promo-codes/{promo_code_id}/stats",
    response_model=PromoStatsResponse,
    responses=ERRORS,
    dependencies=[Depends(require_admin)]
)
async def get_promo_code_stats(promo_code_id: str, uow=Depends(get_unit_of_work)):
    try:
        stats = await GetPromoCodeStatsUseCase(uow)(promo_code_id)
    except DomainException as e:
        raise _http_error(e)
    return PromoStatsResponse(
        promo_code=PromoCodeResponse.from_domain(stats.promo_code),
        usages=[PromoUsageResponse(**usage.model_dump(exclude={"id", "promo_code_id"})) for usage in stats.usages],
        total_usages=stats.total_usages,
        remaining_usages=stats.remaining_usages,
        total_discount_given=stats.total_discount_given,
        unique_users=stats.unique_users
    )


@router.get("/admin/books/low-stock", response_model=List[BookStockResponse], dependencies=[Depends(require_admin)])
async def low_stock_alerts(
    threshold: Optional[int] = None,
    category: Optional[str] = None,
    uow=Depends(get_unit_of_work)
):
    try:
        books = await LowStockAlertsUseCase(uow, settings.LOW_STOCK_THRESHOLD)(threshold, category)
        return [BookStockResponse.from_domain(book) for book in books]
    except DomainException as e:
        raise _http_error(e)


# Payments

@router.post(
    "/payment/create-session",
    response_model=PaymentSessionResponse,
    responses={**ERRORS, 502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}
)
async def create_payment_session(
    request: CreatePaymentSessionRequest,
    user_id: str = Depends(get_current_user_id),
    is_admin: bool = Depends(get_is_admin),
    use_case: CreatePaymentSessionUseCase = Depends(get_create_session_use_case)
):
    try:
        session = await use_case(request.order_id, user_id, is_admin=is_admin)
        return PaymentSessionResponse(
            session_id=session.session_id,
            amount=session.amount,
            currency=session.currency,
            key=session.key_id
        )
    except DomainException as e:
        raise _http_error(e)


@router.post("/payment/verify", response_model=VerifyPaymentResponse, responses=ERRORS)
async def verify_payment(
    request: VerifyPaymentRequest,
    use_case: VerifyPaymentUseCase = Depends(get_verify_payment_use_case)
):
    """Client handler or provider callback; replays are harmless"""
    try:
        await use_case(VerifyPaymentDTO(**request.model_dump()))
        return VerifyPaymentResponse()
    except DomainException as e:
        raise _http_error(e)
