"""
Reservoir Services — Núcleo transacional.

- ReservationCoordinator: reserve, release, confirm, check-stock e ajustes
- ExpirySweeper: expira reservas vencidas e remove as terminais antigas
- IdempotencyService: dedupe/replay por chave de idempotência
"""

from .coordinator import ReservationCoordinator  # noqa: F401
from .idempotency import IdempotencyService  # noqa: F401
from .sweeper import ExpirySweeper  # noqa: F401
