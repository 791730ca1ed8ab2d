"""
Management command to seed example data for testing and demonstration.

Usage:
    python manage.py seed_example
    python manage.py seed_example --reset  # Clear and reseed
    python manage.py seed_example --demo   # Include demo carts
"""

from django.core.management.base import BaseCommand

from example.shop.models import CartLine, Product
from reservoir.models import Reservation, StockMovement, StockRecord
from reservoir.services import ReservationCoordinator


class Command(BaseCommand):
    help = "Seed example data for the shop"

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Clear existing data before seeding",
        )
        parser.add_argument(
            "--demo",
            action="store_true",
            help="Create demo carts to show the reserve/confirm flow",
        )

    def handle(self, *args, **options):
        if options["reset"]:
            self.stdout.write("Clearing existing data...")
            CartLine.objects.all().delete()
            Reservation.objects.all().delete()
            StockMovement.objects.all().delete()
            StockRecord.objects.all().delete()
            Product.objects.all().delete()

        coordinator = ReservationCoordinator()
        self.seed_products()
        self.seed_stock(coordinator)

        if options["demo"]:
            self.create_demo_carts(coordinator)

        self.stdout.write(self.style.SUCCESS("\nExample data seeded successfully!"))
        self.stdout.write("\nNext steps:")
        self.stdout.write("  1. Run: python manage.py runserver")
        self.stdout.write("  2. Watch: curl -N http://localhost:8000/api/stock/T-SHIRT/stream?variant=M")
        self.stdout.write("  3. Run the sweeper: python manage.py sweep_reservations --watch")

    def seed_products(self):
        """Create example products."""
        self.stdout.write("\nCreating products...")

        products = [
            {"sku": "T-SHIRT", "name": "Basic T-Shirt", "price_q": 4990, "description": "Cotton t-shirt"},
            {"sku": "HOODIE", "name": "Hoodie", "price_q": 15990, "description": "Fleece hoodie"},
            {"sku": "CAP", "name": "Cap", "price_q": 5990, "description": "Embroidered cap"},
            {"sku": "MUG", "name": "Mug", "price_q": 3490, "description": "Ceramic mug"},
            {"sku": "STICKERS", "name": "Sticker Pack", "price_q": 1490, "description": "Limited edition"},
        ]

        for data in products:
            product, created = Product.objects.get_or_create(
                sku=data["sku"],
                defaults=data,
            )
            status = "created" if created else "exists"
            self.stdout.write(f"  {product.sku}: {product.name} ({product.price_display}) - {status}")

    def seed_stock(self, coordinator: ReservationCoordinator):
        """Set ledger totals (per variant where the product has sizes)."""
        self.stdout.write("\nSetting stock...")

        stock = [
            ("T-SHIRT", "S", 10),
            ("T-SHIRT", "M", 25),
            ("T-SHIRT", "L", 4),
            ("HOODIE", "M", 8),
            ("HOODIE", "L", 2),
            ("CAP", None, 30),
            ("MUG", None, 12),
            ("STICKERS", None, 1),
        ]

        for sku, variant, total in stock:
            availability = coordinator.adjust_stock(sku, variant, total=total, reason="seed")
            label = f"{sku}:{variant}" if variant else sku
            flag = " (low)" if availability.is_low else ""
            self.stdout.write(f"  {label}: {availability.total_stock} in stock{flag}")

    def create_demo_carts(self, coordinator: ReservationCoordinator):
        """Create carts showing active, released and confirmed reservations."""
        from example.shop.cart import CartService

        self.stdout.write("\nCreating demo carts...")

        # Cart 1: items on hold
        cart1 = CartService("demo:browsing", coordinator)
        cart1.add_item("T-SHIRT", 2, variant="M")
        cart1.add_item("MUG", 1)
        self.stdout.write("  demo:browsing: 2 lines on hold")

        # Cart 2: partial removal
        cart2 = CartService("demo:undecided", coordinator)
        line = cart2.add_item("CAP", 3)
        cart2.remove_item(line, qty=1)
        self.stdout.write("  demo:undecided: CAP 3 -> 2 (partial release)")

        # Cart 3: checked out
        cart3 = CartService("demo:buyer", coordinator)
        cart3.add_item("HOODIE", 1, variant="L")
        result = cart3.checkout(idempotency_key="DEMO-001")
        self.stdout.write(f"  demo:buyer: checked out {result['lines']} line(s)")

        self.stdout.write(self.style.SUCCESS("\n  Created 3 demo carts"))
