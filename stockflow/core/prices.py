from decimal import Decimal

from .exceptions import InvalidArgument


def calculate_line_total(
    quantity: int, unit_price: Decimal, discount: Decimal | None = None
) -> Decimal:
    """Return ``quantity * unit_price - discount`` for a single order line."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgument(
            f"Line quantity must be a positive integer, got {quantity!r}.",
            field="quantity",
        )
    unit_price = Decimal(unit_price)
    if unit_price < 0:
        raise InvalidArgument("Unit price cannot be negative.", field="unit_price")
    discount = Decimal(discount) if discount is not None else Decimal(0)
    if discount < 0:
        raise InvalidArgument("Discount cannot be negative.", field="discount")
    return quantity * unit_price - discount
