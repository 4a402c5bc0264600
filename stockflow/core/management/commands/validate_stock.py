from collections import defaultdict

from django.core.management.base import BaseCommand, CommandError
from django.db.models import F, Sum

from ....warehouse import AllocationStatus
from ....warehouse.models import Allocation, InventoryTransaction, Stock


class Command(BaseCommand):
    help = (
        "Check every stock position against the ledger and the open allocations "
        "and report positions that disagree"
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--warehouse",
            type=int,
            help="Only check stock positions of this warehouse",
        )

    def handle(self, *args, **options):
        stocks = Stock.objects.select_related("warehouse", "product_variant")
        if options["warehouse"]:
            stocks = stocks.filter(warehouse_id=options["warehouse"])

        ledger_quantities = {}
        for row in InventoryTransaction.objects.order_by("occurred_at", "pk").values(
            "product_variant_id", "warehouse_id", "quantity_after"
        ):
            # rows are ordered, the last one per position wins
            key = (row["product_variant_id"], row["warehouse_id"])
            ledger_quantities[key] = row["quantity_after"]

        reserved = defaultdict(int)
        for row in (
            Allocation.objects.exclude(status=AllocationStatus.RELEASED)
            .values("stock_id")
            .annotate(total=Sum(F("quantity") - F("quantity_fulfilled")))
        ):
            reserved[row["stock_id"]] = row["total"] or 0

        checked = 0
        mismatches = 0
        for stock in stocks.iterator():
            checked += 1
            expected_quantity = ledger_quantities.get(
                (stock.product_variant_id, stock.warehouse_id), 0
            )
            expected_reserved = reserved[stock.pk]
            if (
                stock.quantity == expected_quantity
                and stock.quantity_reserved == expected_reserved
            ):
                continue
            mismatches += 1
            self.stdout.write(
                self.style.ERROR(
                    f"  ✗ {stock.product_variant.sku} in {stock.warehouse.name}: "
                    f"quantity {stock.quantity} (ledger {expected_quantity}), "
                    f"reserved {stock.quantity_reserved} "
                    f"(allocations {expected_reserved})"
                )
            )

        self.stdout.write(f"Checked {checked} stock positions")
        if mismatches:
            raise CommandError(f"{mismatches} stock positions do not match")
        self.stdout.write(self.style.SUCCESS("✓ All stock positions match"))
