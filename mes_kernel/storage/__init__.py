"""Storage port and its adapters."""

from mes_kernel.storage.memory_store import InMemoryStockStore
from mes_kernel.storage.port import StockStore
from mes_kernel.storage.sqlalchemy_store import SqlAlchemyStockStore

__all__ = [
    "StockStore",
    "InMemoryStockStore",
    "SqlAlchemyStockStore",
]
