"""
Reservoir Ledger Service — Resolve o backend configurado.
"""

from __future__ import annotations

import logging

from django.utils.module_loading import import_string

from reservoir.conf import get_setting

from .protocols import LedgerBackend

logger = logging.getLogger(__name__)


def get_ledger_backend() -> LedgerBackend:
    """
    Instancia o backend de RESERVOIR["LEDGER_BACKEND"] com RESERVOIR["LEDGER_OPTIONS"].
    """
    path = get_setting("LEDGER_BACKEND")
    options = get_setting("LEDGER_OPTIONS") or {}
    backend_cls = import_string(path)
    backend = backend_cls(**options)
    if not isinstance(backend, LedgerBackend):
        raise TypeError(f"Expected LedgerBackend protocol, got {type(backend)}")
    logger.debug("Ledger backend loaded: %s", path)
    return backend
