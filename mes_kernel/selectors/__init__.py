"""Read-only query selectors over the StockStore."""

from mes_kernel.selectors.base import BaseSelector
from mes_kernel.selectors.stock_selector import StockSelector

__all__ = ["BaseSelector", "StockSelector"]
