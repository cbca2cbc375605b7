"""Flush-only kernel services."""

from materials_kernel.services.base import BaseService
from materials_kernel.services.ledger_writer import LedgerWriter

__all__ = ["BaseService", "LedgerWriter"]
