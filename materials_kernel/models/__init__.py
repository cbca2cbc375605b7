"""ORM models for the materials ledger."""

from materials_kernel.models.inventory import (
    INVENTORY_MODELS,
    CementInventory,
    DieselInventory,
    SteelInventory,
)
from materials_kernel.models.site import Site
from materials_kernel.models.transaction import (
    TRANSACTION_MODELS,
    CementTransaction,
    DieselTransaction,
    LedgerRowBase,
    SteelTransaction,
)

__all__ = [
    "Site",
    "SteelInventory",
    "CementInventory",
    "DieselInventory",
    "INVENTORY_MODELS",
    "LedgerRowBase",
    "SteelTransaction",
    "CementTransaction",
    "DieselTransaction",
    "TRANSACTION_MODELS",
]
