from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Boolean, Enum, DateTime, JSON, MetaData,
    CheckConstraint, Index, ForeignKey, true,
)
from sqlalchemy.sql import func

from storefront.domain.models import OrderStatus, PaymentMethod, DiscountType

metadata = MetaData()

MONEY = Numeric(12, 2, asdecimal=True)


def _enum(enum_cls, name: str) -> Enum:
    # store the values ("Out for Delivery"), not the member names
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


books_tbl = Table(
    "books",
    metadata,
    Column("id", String, primary_key=True),
    Column("title", String, nullable=False),
    Column("category", String, nullable=False, server_default=""),
    Column("price", MONEY, nullable=False),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
)


promo_codes_tbl = Table(
    "promo_codes",
    metadata,
    Column("id", String, primary_key=True),
    Column("code", String, nullable=False, unique=True, index=True),
    Column("discount_type", _enum(DiscountType, "discount_type"), nullable=False),
    Column("discount_value", MONEY, nullable=False),
    Column("min_cart_value", MONEY, nullable=False, server_default="0"),
    Column("max_discount", MONEY, nullable=True),
    Column("usage_limit", Integer, nullable=False),
    Column("used_count", Integer, nullable=False, server_default="0"),
    Column("per_user_limit", Integer, nullable=False, server_default="1"),
    Column("expiry_date", DateTime(timezone=True), nullable=False, index=True),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("used_count >= 0", name="ck_promo_used_count_non_negative"),
    CheckConstraint("used_count <= usage_limit", name="ck_promo_used_count_within_limit"),
    CheckConstraint("usage_limit >= 1", name="ck_promo_usage_limit_positive"),
    CheckConstraint("per_user_limit >= 1", name="ck_promo_per_user_limit_positive"),
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("order_items", JSON, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("payment_method", _enum(PaymentMethod, "payment_method"), nullable=False),
    Column("items_price", MONEY, nullable=False),
    Column("tax_price", MONEY, nullable=False),
    Column("shipping_price", MONEY, nullable=False),
    Column("discount_amount", MONEY, nullable=False),
    Column("total_price", MONEY, nullable=False),
    Column("promo_code_id", String, ForeignKey("promo_codes.id"), nullable=True),
    Column("is_paid", Boolean, nullable=False, default=False),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("payment_result", JSON, nullable=True),
    Column("payment_session_id", String, nullable=True),
    Column("is_delivered", Boolean, nullable=False, default=False),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("status", _enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PENDING),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)


promo_code_usages_tbl = Table(
    "promo_code_usages",
    metadata,
    Column("id", String, primary_key=True),
    Column("promo_code_id", String, ForeignKey("promo_codes.id"), nullable=False),
    Column("user_id", String, nullable=False),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, unique=True),
    Column("discount_amount", MONEY, nullable=False),
    Column("used_at", DateTime(timezone=True), nullable=False),
    Index("ix_promo_code_usages_code_user", "promo_code_id", "user_id"),
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)
