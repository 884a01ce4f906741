"""Shared utilities."""
from .logging import StructuredFormatter, configure_logging

__all__ = ["StructuredFormatter", "configure_logging"]
