class PurchaseOrderStatus:
    """Status of a purchase order through its lifecycle."""

    PENDING = "pending"  # being prepared, nothing sent to the supplier yet
    ORDERED = "ordered"  # sent to the supplier
    RECEIVED = "received"  # goods booked into a warehouse
    CANCELLED = "cancelled"

    CHOICES = [
        (PENDING, "Pending"),
        (ORDERED, "Ordered"),
        (RECEIVED, "Received"),
        (CANCELLED, "Cancelled"),
    ]

    TERMINAL = [RECEIVED, CANCELLED]

    ALLOWED_SOURCES = {
        ORDERED: [PENDING],
        RECEIVED: [PENDING, ORDERED],
        CANCELLED: [PENDING, ORDERED],
    }
