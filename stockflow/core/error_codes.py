from enum import Enum


class StockflowErrorCode(str, Enum):
    """Error codes carried by every stockflow exception."""

    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID = "invalid"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
