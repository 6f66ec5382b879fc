from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from storefront.domain.models import Book, DiscountType, Order, OrderStatus, PaymentMethod, PromoCode


class CartLineRequest(BaseModel):
    product_id: str
    qty: int = Field(gt=0)
    price: Optional[Decimal] = None


class ShippingAddressRequest(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class CreateOrderRequest(BaseModel):
    order_items: List[CartLineRequest]
    shipping_address: ShippingAddressRequest
    payment_method: PaymentMethod
    promo_code_id: Optional[str] = None


class OrderItemResponse(BaseModel):
    product_id: str
    title: str
    price: Decimal
    qty: int


class PaymentResultResponse(BaseModel):
    id: str
    status: str
    update_time: str


class OrderResponse(BaseModel):
    id: str
    user_id: str
    order_items: List[OrderItemResponse]
    shipping_address: ShippingAddressRequest
    payment_method: PaymentMethod
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    discount_amount: Decimal
    total_price: Decimal
    promo_code_id: Optional[str] = None
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_result: Optional[PaymentResultResponse] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            id=order.id,
            user_id=order.user_id,
            order_items=[OrderItemResponse(**item.model_dump()) for item in order.order_items],
            shipping_address=ShippingAddressRequest(**order.shipping_address.model_dump()),
            payment_method=order.payment_method,
            items_price=order.items_price,
            tax_price=order.tax_price,
            shipping_price=order.shipping_price,
            discount_amount=order.discount_amount,
            total_price=order.total_price,
            promo_code_id=order.promo_code_id,
            is_paid=order.is_paid,
            paid_at=order.paid_at,
            payment_result=PaymentResultResponse(**order.payment_result.model_dump()) if order.payment_result else None,
            is_delivered=order.is_delivered,
            delivered_at=order.delivered_at,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class ValidatePromoRequest(BaseModel):
    code: str
    cart_total: Decimal


class ValidatePromoResponse(BaseModel):
    success: bool = True
    promo_code_id: str
    code: str
    discount: Decimal
    final_amount: Decimal
    message: str = "Promo code applied successfully"


class PromoCodeResponse(BaseModel):
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    min_cart_value: Decimal
    max_discount: Optional[Decimal] = None
    usage_limit: int
    used_count: int
    per_user_limit: int
    expiry_date: datetime
    is_active: bool

    @classmethod
    def from_domain(cls, promo: PromoCode):
        return cls(**promo.model_dump(exclude={"created_at", "updated_at"}))


class PromoUsageResponse(BaseModel):
    user_id: str
    order_id: str
    discount_amount: Decimal
    used_at: datetime


class PromoStatsResponse(BaseModel):
    promo_code: PromoCodeResponse
    usages: List[PromoUsageResponse]
    total_usages: int
    remaining_usages: int
    total_discount_given: Decimal
    unique_users: int


class BookStockResponse(BaseModel):
    id: str
    title: str
    category: str
    price: Decimal
    stock: int

    @classmethod
    def from_domain(cls, book: Book):
        return cls(**book.model_dump())


class CreatePaymentSessionRequest(BaseModel):
    order_id: str


class PaymentSessionResponse(BaseModel):
    session_id: str
    amount: int
    currency: str
    key: str


class VerifyPaymentRequest(BaseModel):
    session_id: str
    payment_id: str
    signature: str
    order_id: str


class VerifyPaymentResponse(BaseModel):
    message: str = "Payment Verified"
    verified: bool = True


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail
