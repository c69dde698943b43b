"""Data models for the btc-broker system."""

from .types import (
    Btc,
    BtcExchangeRate,
    Cash,
    Percentage,
    Fee,
    FeeKind,
    Purchase,
    Offer,
    net_margin,
)

__all__ = [
    "Btc",
    "BtcExchangeRate",
    "Cash",
    "Percentage",
    "Fee",
    "FeeKind",
    "Purchase",
    "Offer",
    "net_margin",
]
