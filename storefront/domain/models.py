from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel


CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Quantise to paise, half up"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"
    REFUNDED = "Refunded"


class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    COD = "cod"


class DiscountType(str, Enum):
    PERCENT = "PERCENT"
    FLAT = "FLAT"


class Book(BaseModel):
    """Inventory-bearing catalog entry"""
    id: str
    title: str
    category: str = ""
    price: Decimal
    stock: int


class PromoCode(BaseModel):
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    min_cart_value: Decimal = Decimal("0")
    max_discount: Optional[Decimal] = None
    usage_limit: int
    used_count: int = 0
    per_user_limit: int = 1
    expiry_date: datetime
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PromoCodeUsage(BaseModel):
    """Redemption ledger entry"""
    id: str
    promo_code_id: str
    user_id: str
    order_id: str
    discount_amount: Decimal
    used_at: datetime


class DiscountQuote(BaseModel):
    promo_code_id: str
    code: str
    discount: Decimal
    final_amount: Decimal


class OrderItem(BaseModel):
    """Line snapshot, never recomputed from the live catalog"""
    product_id: str
    title: str
    price: Decimal
    qty: int

    @property
    def line_total(self) -> Decimal:
        return money(self.price * self.qty)


class ShippingAddress(BaseModel):
    address: str
    city: str
    postal_code: str
    country: str


class PaymentResult(BaseModel):
    id: str
    status: str
    update_time: str


class Order(BaseModel):
    """Placed order with its priced lines and discount snapshot"""
    id: str
    user_id: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    discount_amount: Decimal
    total_price: Decimal
    promo_code_id: Optional[str] = None
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_result: Optional[PaymentResult] = None
    payment_session_id: Optional[str] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    updated_at: datetime

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    def can_be_paid_online(self) -> bool:
        """Business rule: only unpaid razorpay orders get a payment session"""
        return self.payment_method == PaymentMethod.RAZORPAY and not self.is_paid

    def amount_in_minor_units(self) -> int:
        return int((self.total_price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CartLine(BaseModel):
    product_id: str
    qty: int
    price: Optional[Decimal] = None
