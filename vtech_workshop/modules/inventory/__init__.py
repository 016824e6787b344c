from .stock import StockLedger

__all__ = ["StockLedger"]
