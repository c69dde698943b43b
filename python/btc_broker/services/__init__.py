"""Services for the btc-broker system."""

from .ledger import PurchaseLedger
from .profit_collector import collect_profit, required_margin
from .seller import (
    SellerActor,
    TrendReading,
    NewPurchase,
    StaleReadingError,
    spawn,
)
from .settlement import PaperSettler, SettlementResult

__all__ = [
    "PurchaseLedger",
    "collect_profit",
    "required_margin",
    "SellerActor",
    "TrendReading",
    "NewPurchase",
    "StaleReadingError",
    "spawn",
    "PaperSettler",
    "SettlementResult",
]
