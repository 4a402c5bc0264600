class ShipmentStatus:
    CREATED = "created"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    CHOICES = [
        (CREATED, "Created"),
        (IN_TRANSIT, "In transit"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
    ]

    TERMINAL = [DELIVERED, CANCELLED]

    ALLOWED_SOURCES = {
        IN_TRANSIT: [CREATED],
        DELIVERED: [IN_TRANSIT],
        CANCELLED: [CREATED, IN_TRANSIT],
    }
