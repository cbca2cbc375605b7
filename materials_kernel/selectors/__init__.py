"""Read-only selectors returning DTOs."""

from materials_kernel.selectors.base import BaseSelector
from materials_kernel.selectors.inventory_selector import (
    InventorySelector,
    TransactionSelector,
)
from materials_kernel.selectors.site_selector import SiteSelector

__all__ = [
    "BaseSelector",
    "InventorySelector",
    "TransactionSelector",
    "SiteSelector",
]
