"""Paper settlement of offers for simulation.

Stands in for the component that would put offers on an exchange. An offer
fills when the latest market rate is at or above the offer rate, less an
optional tolerance. Purchases of an offer that did not fill are handed back
so they can re-enter the seller's ledger.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from ..config import Config
from ..models.types import (
    BtcExchangeRate,
    Cash,
    HUNDRED,
    Offer,
    Purchase,
    net_margin,
)

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    """Result of settling one offer."""
    offer: Offer
    filled: bool
    market_rate: Optional[BtcExchangeRate] = None
    profit: Cash = Decimal(0)
    unsold: Tuple[Purchase, ...] = ()


@dataclass
class SettlementStats:
    """Statistics for paper settlement."""
    offers_filled: int = 0
    offers_rejected: int = 0
    btc_sold: Decimal = Decimal(0)
    realized_profit: Cash = Decimal(0)
    results: List[SettlementResult] = field(default_factory=list)


class PaperSettler:
    """Paper settlement for offers.

    Simulates selling without any API calls.
    """

    def __init__(self, config: Config):
        self.config = config
        self.tolerance = config.paper.fill_tolerance()
        self.fee = config.seller.fee()
        self.latest_rate: Optional[BtcExchangeRate] = None
        self.stats = SettlementStats()

    def observe_rate(self, rate: BtcExchangeRate) -> None:
        """Record the latest market rate."""
        self.latest_rate = rate

    def fill_floor(self, offer: Offer) -> BtcExchangeRate:
        """Lowest market rate at which `offer` still fills."""
        return offer.rate - offer.rate / HUNDRED * self.tolerance

    def settle(self, offer: Offer) -> SettlementResult:
        """Simulate selling an offer at the latest market rate."""
        if self.latest_rate is None or self.latest_rate < self.fill_floor(offer):
            result = SettlementResult(
                offer=offer,
                filled=False,
                market_rate=self.latest_rate,
                unsold=offer.purchases,
            )
            self.stats.offers_rejected += 1
            logger.info(
                f"Offer {offer.id} at {offer.rate} not filled "
                f"(market {self.latest_rate}), returning "
                f"{len(offer.purchases)} purchases"
            )
        else:
            profit = net_margin(offer.proceeds - offer.cost_basis, self.fee)
            result = SettlementResult(
                offer=offer,
                filled=True,
                market_rate=self.latest_rate,
                profit=profit,
            )
            self.stats.offers_filled += 1
            self.stats.btc_sold += offer.quantity
            self.stats.realized_profit += profit
            logger.info(
                f"Offer {offer.id} filled: {offer.quantity} BTC at "
                f"{offer.rate}, profit {profit}"
            )

        self.stats.results.append(result)
        return result

    def get_stats_dict(self) -> dict:
        """Get stats as dictionary."""
        return {
            "offers_filled": self.stats.offers_filled,
            "offers_rejected": self.stats.offers_rejected,
            "btc_sold": self.stats.btc_sold,
            "realized_profit": self.stats.realized_profit,
        }
