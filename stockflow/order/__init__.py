class SalesOrderStatus:
    PENDING = "pending"  # created, stock reserved
    CONFIRMED = "confirmed"  # accepted, may already be partly shipped
    SHIPPED = "shipped"  # stock left the warehouse, possibly in several shipments
    DELIVERED = "delivered"  # every allocation delivered
    CANCELLED = "cancelled"  # reservations released

    CHOICES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (SHIPPED, "Shipped"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
    ]

    TERMINAL = [DELIVERED, CANCELLED]

    # statuses an order may be in for a transition to the key status
    ALLOWED_SOURCES = {
        CONFIRMED: [PENDING],
        SHIPPED: [PENDING, CONFIRMED, SHIPPED],
        DELIVERED: [CONFIRMED, SHIPPED],
        CANCELLED: [PENDING, CONFIRMED],
    }
