"""
Reservoir Ledger Contrib — Integração com o ledger de estoque (catálogo).

Uso:
    from reservoir.contrib.ledger import LedgerBackend, get_ledger_backend

Backends prontos:
    from reservoir.contrib.ledger.adapters.model import ModelLedgerBackend
    from reservoir.contrib.ledger.adapters.http import HttpLedgerBackend
"""

from .protocols import LedgerBackend
from .service import get_ledger_backend

__all__ = [
    "LedgerBackend",
    "get_ledger_backend",
]
