from storefront.domain.models import Order


def render_invoice(order: Order, shop_name: str = "Sri Chola Book Shop") -> str:
    """Plain-text invoice sent with the order confirmation"""
    address = order.shipping_address
    lines = [
        shop_name,
        "Thank you for your order!",
        "",
        f"Order ID: {order.id}",
        f"Date: {order.created_at:%d/%m/%Y}",
        f"Payment method: {order.payment_method.value}",
        f"Shipping address: {address.address}, {address.city}, {address.postal_code}, {address.country}",
        "",
    ]
    for item in order.order_items:
        lines.append(f"{item.title} x {item.qty} @ ₹{item.price} = ₹{item.line_total}")
    lines += [
        "",
        f"Items: ₹{order.items_price}",
        f"Tax: ₹{order.tax_price}",
        f"Shipping: ₹{order.shipping_price}",
    ]
    if order.discount_amount:
        lines.append(f"Discount: -₹{order.discount_amount}")
    lines.append(f"Total: ₹{order.total_price}")
    return "\n".join(lines)
