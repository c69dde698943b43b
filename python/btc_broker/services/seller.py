"""Seller actor: decides when to sell the bitcoins we own.

The seller keeps every unsold purchase in its own ledger. Each fresh trend
reading triggers a profit collection round, and any resulting offer is sent
downstream to whatever talks to the exchange. Purchases come in as
NewPurchase messages from the buyer, or back from the exchange side when an
offer did not sell.

Usage:
    inbound_tx, inbound_rx = channel()
    outbound_tx, outbound_rx = channel()
    spawn(inbound_rx, outbound_tx, Fee.percentage(Decimal("0.25")), Decimal(5))
    await inbound_tx.send(NewPurchase(Purchase.new(Decimal(1), Decimal(200))))
    await inbound_tx.send(TrendReading(Decimal(500), current_ts_ms()))
    offer = await outbound_rx.recv()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Set, Union

from ..channel import ChannelClosed, Receiver, Sender
from ..models.types import (
    BtcExchangeRate,
    Fee,
    Offer,
    Percentage,
    Purchase,
    current_ts_ms,
)
from .ledger import PurchaseLedger
from .profit_collector import collect_profit

logger = logging.getLogger(__name__)


STALENESS_THRESHOLD_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class TrendReading:
    """An observation of the current exchange rate."""
    current_trend: BtcExchangeRate
    # Epoch ms of when the rate was observed, not when it was sent.
    observed_at: int


@dataclass(frozen=True)
class NewPurchase:
    """A purchase the seller should try to sell for a better price."""
    purchase: Purchase


Message = Union[TrendReading, NewPurchase]


class StaleReadingError(Exception):
    """A trend reading was too old to act on."""

    def __init__(self, age_ms: int, threshold_ms: int):
        super().__init__(
            f"trend reading is {age_ms / 1000:.1f}s old, "
            f"limit is {threshold_ms / 1000:.1f}s"
        )
        self.age_ms = age_ms
        self.threshold_ms = threshold_ms


@dataclass
class SellerStats:
    """Statistics for the seller."""
    is_running: bool = False
    purchases_received: int = 0
    readings_evaluated: int = 0
    stale_readings: int = 0
    messages_processed: int = 0
    offers_emitted: int = 0
    purchases_offered: int = 0
    ledger_size: int = 0


class SellerActor:
    """Single owner of a purchase ledger.

    Processes inbound messages one at a time in arrival order. Runs until
    the inbound channel is closed or nobody is left to receive offers.
    """

    def __init__(
        self,
        inbound: Receiver,
        outbound: Sender,
        fee: Fee,
        min_margin: Percentage,
        staleness_ms: int = STALENESS_THRESHOLD_MS,
        clock: Callable[[], int] = current_ts_ms,
        progress: Optional[asyncio.Event] = None,
    ):
        self.inbound = inbound
        self.outbound = outbound
        # Selling fee only; the buying fee is part of each purchase's rate.
        self.fee = fee
        self.min_margin = min_margin
        self.staleness_ms = staleness_ms
        self._clock = clock
        # Set after every handled message and on shutdown.
        self._progress = progress

        self.ledger = PurchaseLedger()
        self.stats = SellerStats()

    async def run(self) -> None:
        """Process messages until one of the channels closes."""
        self.stats.is_running = True
        logger.info(
            f"Seller started (fee={self.fee}, min_margin={self.min_margin}%)"
        )

        try:
            while True:
                try:
                    message = await self.inbound.recv()
                except ChannelClosed:
                    logger.error("The seller's input channel closed. Stopping ...")
                    break

                try:
                    offer = self.route(message)
                except StaleReadingError as e:
                    self.stats.stale_readings += 1
                    logger.warning(f"A message failed to be processed due to: {e}")
                    offer = None

                if offer is not None:
                    try:
                        await self.outbound.send(offer)
                    except ChannelClosed:
                        logger.error("The seller's output channel closed. Stopping ...")
                        break

                    self.stats.offers_emitted += 1
                    self.stats.purchases_offered += len(offer.purchases)
                    logger.info(
                        f"Offered {len(offer.purchases)} purchases "
                        f"({offer.quantity} BTC) at rate {offer.rate}"
                    )

                self.stats.messages_processed += 1
                self._notify_progress()
        finally:
            self.stats.is_running = False
            await self.inbound.close()
            await self.outbound.close()
            self._notify_progress()

    def _notify_progress(self) -> None:
        if self._progress is not None:
            self._progress.set()

    def route(self, message: Message) -> Optional[Offer]:
        """Apply one message to the ledger.

        Returns:
            Offer to send downstream, if the message produced one.

        Raises:
            StaleReadingError: The trend reading is older than the threshold.
            TypeError: The message is not a known message type.
        """
        if isinstance(message, TrendReading):
            age_ms = self._clock() - message.observed_at
            if age_ms > self.staleness_ms:
                raise StaleReadingError(age_ms, self.staleness_ms)

            self.stats.readings_evaluated += 1
            offer = collect_profit(
                self.ledger,
                message.current_trend,
                self.fee,
                self.min_margin,
            )
            self.stats.ledger_size = len(self.ledger)
            return offer

        if isinstance(message, NewPurchase):
            self.ledger.insert(message.purchase)
            self.stats.purchases_received += 1
            self.stats.ledger_size = len(self.ledger)
            return None

        raise TypeError(f"Unknown seller message: {type(message).__name__}")

    def get_stats_dict(self) -> dict:
        """Get stats as dictionary."""
        return {
            "is_running": self.stats.is_running,
            "purchases_received": self.stats.purchases_received,
            "readings_evaluated": self.stats.readings_evaluated,
            "stale_readings": self.stats.stale_readings,
            "messages_processed": self.stats.messages_processed,
            "offers_emitted": self.stats.offers_emitted,
            "purchases_offered": self.stats.purchases_offered,
            "ledger_size": self.stats.ledger_size,
        }


# Detached seller tasks. The event loop only keeps weak references to
# tasks, so these would otherwise be collected mid-run.
_running_sellers: Set[asyncio.Task] = set()


def spawn(
    inbound: Receiver,
    outbound: Sender,
    fee: Fee,
    min_margin: Percentage,
) -> None:
    """Start a seller with an empty ledger as a detached task.

    Must be called from a running event loop. The seller stops on its own
    once either channel closes.
    """
    start_seller(SellerActor(inbound, outbound, fee, min_margin))


def start_seller(actor: SellerActor) -> asyncio.Task:
    """Schedule `actor.run()` and keep it alive until it finishes."""
    task = asyncio.get_running_loop().create_task(actor.run(), name="seller")
    _running_sellers.add(task)
    task.add_done_callback(_running_sellers.discard)
    return task
