"""Order pricing: quantity discounts, line totals and amount formatting."""

from typing import Any

# (minimum quantity, discount rate), highest threshold first
QUANTITY_DISCOUNTS: tuple[tuple[int, float], ...] = (
    (4, 0.20),
    (3, 0.15),
    (2, 0.10),
)


def discount_rate(quantity: int) -> float:
    """Discount applied to a line for the given quantity.

    >>> discount_rate(1)
    0.0
    >>> discount_rate(3)
    0.15
    >>> discount_rate(12)
    0.2
    """
    for minimum, rate in QUANTITY_DISCOUNTS:
        if quantity >= minimum:
            return rate
    return 0.0


def build_line(product_id: str, name: str, unit_price: int, quantity: int) -> dict[str, Any]:
    """Build an order line with its discount and total in whole FCFA."""
    gross = unit_price * quantity
    discount = round(gross * discount_rate(quantity))
    return {
        "product_id": product_id,
        "name": name,
        "quantity": quantity,
        "unit_price": unit_price,
        "discount": discount,
        "total_price": gross - discount,
    }


def cart_subtotal(lines: list[dict[str, Any]]) -> int:
    return sum(line["total_price"] for line in lines)


def cart_discount(lines: list[dict[str, Any]]) -> int:
    return sum(line.get("discount", 0) for line in lines)


def format_amount(amount: int, currency: str = "FCFA") -> str:
    """Format an amount the way it is shown to customers.

    >>> format_amount(12500)
    '12 500 FCFA'
    """
    return f"{amount:,}".replace(",", " ") + f" {currency}"
