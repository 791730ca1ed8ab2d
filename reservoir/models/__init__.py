"""
Reservoir Models — Ledger, reservas e chaves de idempotência.

    from reservoir.models import StockRecord, StockMovement, Reservation, ReservationKey, IdempotencyKey
"""

from .idempotency import IdempotencyKey  # noqa: F401
from .ledger import StockMovement, StockRecord  # noqa: F401
from .reservation import Reservation, ReservationKey  # noqa: F401
