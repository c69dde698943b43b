"""Greedy profit collection over the purchase ledger.

Walks the ledger from the cheapest purchase upwards and takes every
purchase whose net margin beats the minimum margin. The walk stops at the
first purchase that does not qualify, even if a more expensive one further
down would: cheaper purchases are the likeliest to be profitable, so one
pass from the top is enough.
"""

import logging
from typing import List, Optional

from ..models.types import (
    BtcExchangeRate,
    Cash,
    Fee,
    HUNDRED,
    Offer,
    Percentage,
    Purchase,
)
from .ledger import PurchaseLedger

logger = logging.getLogger(__name__)


def required_margin(purchase: Purchase, min_margin: Percentage) -> Cash:
    """Smallest net margin worth selling `purchase` for.

    The minimum is `min_margin` percent of what the purchase cost.
    """
    return purchase.buying_price / HUNDRED * min_margin


def collect_profit(
    ledger: PurchaseLedger,
    rate: BtcExchangeRate,
    fee: Fee,
    min_margin: Percentage,
) -> Optional[Offer]:
    """Pop every leading purchase worth selling at `rate` into one offer.

    Args:
        ledger: Purchases to choose from. Selected purchases are removed.
        rate: Current exchange rate to evaluate against.
        fee: Selling fee policy.
        min_margin: Minimum net margin in percent of the buying price.

    Returns:
        Offer with the selected purchases, cheapest first, or None if the
        best purchase is not worth selling.
    """
    to_sell: List[Purchase] = []

    while True:
        best = ledger.peek_best()
        if best is None:
            break

        margin = best.margin_after_fee(rate, fee)
        if margin <= required_margin(best, min_margin):
            break

        to_sell.append(ledger.pop_best())

    if not to_sell:
        return None

    offer = Offer.new(rate, to_sell)
    logger.debug(
        f"Collected {len(to_sell)} purchases at rate {rate}, "
        f"{len(ledger)} left in ledger"
    )
    return offer
