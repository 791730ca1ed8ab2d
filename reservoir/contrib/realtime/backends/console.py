"""
Console Backend — Log no console (desenvolvimento/debug).
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConsoleBroadcaster:
    """
    Backend que loga eventos no console.

    Útil para desenvolvimento e testes.
    """

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        logger.info(f"BROADCAST {event} @ {channel}: {json.dumps(payload, default=str)}")
