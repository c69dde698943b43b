"""
BTC Broker - profit collection for bitcoin purchases

Keeps a ledger of the bitcoin we bought and, on every fresh reading of the
market rate, decides which purchases are worth selling. Decisions leave the
system as offers for an exchange client to execute.

Components:
- Purchase ledger: unsold purchases, cheapest first
- Profit collector: greedy selection of purchases worth selling
- Seller actor: single owner of the ledger, driven by a message channel
"""

__version__ = "0.1.0"
__author__ = "btc-broker"

from .config import Config, load_config
from .channel import channel, ChannelClosed, Sender, Receiver
from .models.types import (
    Fee,
    FeeKind,
    Purchase,
    Offer,
    net_margin,
)
from .orchestrator import Orchestrator
from .services import (
    PurchaseLedger,
    collect_profit,
    SellerActor,
    TrendReading,
    NewPurchase,
    StaleReadingError,
    spawn,
    PaperSettler,
)

__all__ = [
    # Config
    "Config",
    "load_config",
    # Channels
    "channel",
    "ChannelClosed",
    "Sender",
    "Receiver",
    # Types
    "Fee",
    "FeeKind",
    "Purchase",
    "Offer",
    "net_margin",
    # Orchestrator
    "Orchestrator",
    # Services
    "PurchaseLedger",
    "collect_profit",
    "SellerActor",
    "TrendReading",
    "NewPurchase",
    "StaleReadingError",
    "spawn",
    "PaperSettler",
]
