"""Exceptions raised by stock, order and shipment commands.

Every command runs inside ``transaction.atomic``; raising one of these aborts
the command and rolls back all of its writes.
"""

from typing import TYPE_CHECKING

import attrs

from .error_codes import StockflowErrorCode

if TYPE_CHECKING:
    from ..product.models import ProductVariant


class StockflowError(Exception):
    code = StockflowErrorCode.INVALID


class NotFound(StockflowError):
    """Raised when a referenced record does not exist."""

    code = StockflowErrorCode.NOT_FOUND

    def __init__(self, model_name: str, lookup):
        self.model_name = model_name
        self.lookup = lookup
        super().__init__(f"{model_name} {lookup} does not exist.")


class InvalidTransition(StockflowError):
    """Raised when a status change is not allowed from the current status."""

    code = StockflowErrorCode.INVALID_TRANSITION

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        target_status: str | None = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class InvalidArgument(StockflowError):
    code = StockflowErrorCode.INVALID

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


@attrs.frozen
class InsufficientStockData:
    variant: "ProductVariant" = attrs.field(eq=False)
    requested_quantity: int
    available_quantity: int
    warehouse_pk: int | None = None

    @property
    def shortfall(self) -> int:
        return max(self.requested_quantity - self.available_quantity, 0)

    def describe(self) -> str:
        where = f" in warehouse {self.warehouse_pk}" if self.warehouse_pk else ""
        return (
            f"variant {self.variant.sku}{where}: requested {self.requested_quantity}, "
            f"available {self.available_quantity}. Missing {self.shortfall} units"
        )


class InsufficientStock(StockflowError):
    """Raised when a reservation or stock decrease cannot be covered.

    ``items`` lists every variant that is short, with the requested and the
    available quantity.
    """

    code = StockflowErrorCode.INSUFFICIENT_STOCK

    def __init__(self, items: list[InsufficientStockData]):
        self.items = items
        details = "; ".join(item.describe() for item in items)
        super().__init__(f"Insufficient stock for {details}.")
