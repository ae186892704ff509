"""Reexporta helpers comunes del bridge."""

from utils.log_tools import setup_logging
from utils.url_tools import ensure_trailing_slash, join_url

__all__ = [
    "ensure_trailing_slash",
    "join_url",
    "setup_logging",
]
