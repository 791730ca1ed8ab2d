"""
Django Reservoir — Reserva de estoque em tempo real para Django.

Uso básico:
    from reservoir.services import ReservationCoordinator, ExpirySweeper

    coordinator = ReservationCoordinator()
    reservation = coordinator.reserve(sku="CAMISETA-P", quantity=2, holder_id="user:42")
    coordinator.confirm(reservation.reservation_id)

Para extensões (contrib):
    from reservoir.contrib.ledger import LedgerBackend
    from reservoir.contrib.realtime import Broadcaster, publish
"""

__title__ = "Django Reservoir"
__version__ = "0.1.0"
__author__ = "Reservoir Contributors"
