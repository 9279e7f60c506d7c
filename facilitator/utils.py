"""Logging helpers."""
from __future__ import annotations
import logging
from typing import Optional


def configure_logging(level: Optional[str] = None) -> None:
    """Ensure logging has at least a basic configuration."""
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, (level or "INFO").upper(), logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
