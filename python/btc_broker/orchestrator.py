"""Main orchestrator for the btc-broker system.

Coordinates:
- Channels into and out of the seller
- The seller actor task
- Offer consumption (callbacks and paper settlement)
- Re-injection of purchases that did not sell
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional

from .channel import ChannelClosed, Receiver, Sender, channel
from .config import Config
from .models.types import (
    Btc,
    BtcExchangeRate,
    Offer,
    Purchase,
    current_ts_ms,
    to_decimal,
)
from .services.seller import NewPurchase, SellerActor, TrendReading, start_seller
from .services.settlement import PaperSettler

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorState:
    """Current state of the orchestrator."""
    is_running: bool = False
    messages_sent: int = 0
    offers_received: int = 0
    purchases_reinjected: int = 0
    offers: List[Offer] = field(default_factory=list)


class Orchestrator:
    """Runs one seller and consumes the offers it makes.

    Usage:
        orchestrator = Orchestrator(config)
        await orchestrator.start()
        await orchestrator.record_purchase("0.5", "20000")
        await orchestrator.publish_trend("25000")
        await orchestrator.flush()
        await orchestrator.stop()
    """

    def __init__(
        self,
        config: Config,
        settle: bool = True,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.config = config
        self._clock = clock
        self.settler = PaperSettler(config) if settle else None

        self.state = OrchestratorState()
        self.seller: Optional[SellerActor] = None

        self._inbound: Optional[Sender] = None
        self._reinject: Optional[Sender] = None
        self._seller_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        # Set by the seller and the offer pump whenever either moves forward.
        self._progress: Optional[asyncio.Event] = None

        # Callbacks for external monitoring
        self.on_offer: Optional[Callable[[Offer], Awaitable[None]]] = None

    async def start(self) -> None:
        """Start the seller and the offer pump."""
        seller_config = self.config.seller
        logger.info(
            f"Starting orchestrator (fee={seller_config.fee()}, "
            f"min_margin={seller_config.min_margin()}%)"
        )

        inbound_tx, inbound_rx = channel(seller_config.inbound_capacity)
        outbound_tx, outbound_rx = channel(seller_config.outbound_capacity)
        self._progress = asyncio.Event()

        self.seller = SellerActor(
            inbound_rx,
            outbound_tx,
            fee=seller_config.fee(),
            min_margin=seller_config.min_margin(),
            staleness_ms=seller_config.staleness_ms,
            clock=self._clock,
            progress=self._progress,
        )
        self._inbound = inbound_tx
        self._reinject = inbound_tx.clone()

        self._seller_task = start_seller(self.seller)
        self._pump_task = asyncio.create_task(
            self._pump_offers(outbound_rx), name="offer-pump"
        )
        self.state.is_running = True

    async def stop(self) -> None:
        """Close the seller's input and wait for everything to wind down."""
        logger.info("Stopping orchestrator")
        self.state.is_running = False

        if self._inbound is not None:
            await self._inbound.close()
        if self._reinject is not None:
            await self._reinject.close()

        tasks = [t for t in (self._seller_task, self._pump_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks)

    async def record_purchase(self, quantity: Btc, rate: BtcExchangeRate) -> Purchase:
        """Hand a new purchase to the seller."""
        purchase = Purchase.new(to_decimal(quantity), to_decimal(rate))
        await self._send(self._inbound, NewPurchase(purchase))
        return purchase

    async def publish_trend(
        self,
        rate: BtcExchangeRate,
        observed_at: Optional[int] = None,
    ) -> None:
        """Hand a trend reading to the seller.

        Args:
            rate: Observed exchange rate.
            observed_at: Epoch ms of the observation, defaults to now.
        """
        rate = to_decimal(rate)
        if observed_at is None:
            observed_at = self._clock()

        if self.settler is not None:
            age_ms = self._clock() - observed_at
            if age_ms <= self.config.seller.staleness_ms:
                self.settler.observe_rate(rate)

        await self._send(self._inbound, TrendReading(rate, observed_at))

    async def reinject(self, purchases: Iterable[Purchase]) -> None:
        """Send unsold purchases back into the seller's ledger."""
        for purchase in purchases:
            await self._send(self._reinject, NewPurchase(purchase))
            self.state.purchases_reinjected += 1

    async def flush(self) -> None:
        """Wait until every message sent so far and every offer it caused
        has been handled, re-injected purchases included.

        Returns early once the seller or the offer pump has stopped, and
        re-raises the error if the pump died.

        Raises:
            RuntimeError: The orchestrator was never started.
        """
        if self._seller_task is None or self._pump_task is None:
            raise RuntimeError("Orchestrator is not started")

        while True:
            self._progress.clear()

            if self._pump_task.done():
                self._pump_task.result()
                return
            if self._seller_task.done():
                return

            seller_stats = self.seller.stats
            if (
                seller_stats.messages_processed >= self.state.messages_sent
                and self.state.offers_received >= seller_stats.offers_emitted
            ):
                return

            await self._progress.wait()

    async def _send(self, sender: Optional[Sender], message) -> None:
        if sender is None:
            raise RuntimeError("Orchestrator is not started")
        await sender.send(message)
        self.state.messages_sent += 1

    async def _pump_offers(self, offers: Receiver) -> None:
        """Consume offers until the seller closes its output."""
        try:
            async for offer in offers:
                self.state.offers.append(offer)

                if self.on_offer:
                    try:
                        await self.on_offer(offer)
                    except Exception as e:
                        logger.warning(f"Offer callback failed for {offer.id}: {e}")

                if self.settler is not None:
                    result = self.settler.settle(offer)
                    if result.unsold:
                        try:
                            await self.reinject(result.unsold)
                        except ChannelClosed:
                            logger.error(
                                f"Seller input closed, dropping {len(result.unsold)} "
                                f"unsold purchases from offer {offer.id}"
                            )

                self.state.offers_received += 1
                self._progress.set()
        finally:
            self._progress.set()

        logger.info("Offer stream ended")

    def get_stats(self) -> dict:
        """Get orchestrator statistics."""
        return {
            "is_running": self.state.is_running,
            "messages_sent": self.state.messages_sent,
            "offers_received": self.state.offers_received,
            "purchases_reinjected": self.state.purchases_reinjected,
            "seller_stats": self.seller.get_stats_dict() if self.seller else {},
            "settlement_stats": self.settler.get_stats_dict() if self.settler else {},
        }
