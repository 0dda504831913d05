"""Chat-ready product descriptions"""
from decimal import Decimal
from django.conf import settings


def format_price(value):
    symbol = getattr(settings, 'CURRENCY_SYMBOL', 'S/.')
    return f"{symbol}{Decimal(value or 0):.2f}"


def format_product_message(product, variant=None):
    """
    Text sent to a customer when an agent shares a product in a conversation.
    Variant data (price, stock, sku) wins over the base product's.
    """
    name = f"{product.name} - {variant.name}" if variant else product.name
    price = variant.get_price() if variant else product.price
    stock = variant.stock if variant else product.stock
    sku = (variant.sku if variant else None) or product.sku

    lines = [f"*{name}*", ""]
    if product.description:
        lines.extend([product.description, ""])
    lines.append(f"*Price:* {format_price(price)}")
    if stock is not None:
        lines.append(f"*Available stock:* {stock} units")
    if sku:
        lines.append(f"*SKU:* {sku}")

    variant_count = product.variants.filter(is_active=True).count()
    if variant and variant_count > 1:
        lines.append("")
        lines.append(f"*Selected variant:* {variant.name}")
        lines.append(f"_Other variants available: {variant_count - 1}_")

    lines.append("")
    lines.append("Would you like to place an order?")
    return "\n".join(lines)
