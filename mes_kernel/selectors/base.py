"""
Module: mes_kernel.selectors.base
Responsibility: Base class for read-only query selectors over the StockStore.
Architecture position: Kernel > Selectors.  May import from domain/ and
    storage/.  MUST NOT import from mes_services or outer layers.

Invariants enforced:
    - Read-only access: selectors never call a write method of the store.
    - Selectors return frozen dataclasses, never ORM instances.
    - The caller owns the store and its transaction scope.
"""

from abc import ABC

from mes_kernel.storage.port import StockStore


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a StockStore from the caller, perform read-only
        queries, and return DTOs or computed results.
    """

    def __init__(self, store: StockStore):
        self.store = store
