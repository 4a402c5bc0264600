class InventoryTransactionType:
    """Kind of movement recorded in the stock ledger."""

    IN = "in"
    OUT = "out"
    ADJUST = "adjust"  # quantity set to an absolute value, e.g. after a count
    MOVE = "move"  # one row on each side of a warehouse transfer

    CHOICES = [
        (IN, "In"),
        (OUT, "Out"),
        (ADJUST, "Adjust"),
        (MOVE, "Move"),
    ]


class AllocationStatus:
    """Status of the stock reserved for a single sales order line."""

    RESERVED = "reserved"  # still holding back stock
    DELIVERED = "delivered"  # fully shipped
    RELEASED = "released"  # remainder handed back to the warehouse

    CHOICES = [
        (RESERVED, "Reserved"),
        (DELIVERED, "Delivered"),
        (RELEASED, "Released"),
    ]


class LedgerReferenceType:
    """Document a ledger row was written for."""

    SALES_ORDER = "SalesOrder"
    PURCHASE_ORDER = "PurchaseOrder"
