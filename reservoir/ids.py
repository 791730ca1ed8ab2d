"""
Reservoir IDs — Identificadores legíveis para reservas e chaves de idempotência.
"""

from __future__ import annotations

import secrets
import string


# Sem caracteres ambíguos (0/O, 1/I): IDs são ditados ao suporte
ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "01OI")


def random_token(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_reservation_id() -> str:
    """
    Gera ID único para Reservation.

    Formato: RSV-XXXXXXXXXXXX (cabe no campo de 32 e na URL sem escape)
    """
    return f"RSV-{random_token(12)}"


def generate_idempotency_key() -> str:
    """Chave IDEM-XXXXXXXXXXXXXXXX para quando o chamador não traz a sua."""
    return f"IDEM-{random_token(16)}"
