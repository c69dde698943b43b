"""Tests for the Orchestrator."""

import asyncio
import logging
from decimal import Decimal

import pytest
from btc_broker.config import Config
from btc_broker.models.types import current_ts_ms
from btc_broker.orchestrator import Orchestrator


def run(coro):
    return asyncio.run(coro)


async def record_sample_purchases(orchestrator: Orchestrator) -> None:
    await orchestrator.record_purchase(Decimal(5), Decimal(450))
    await orchestrator.record_purchase(Decimal(1), Decimal(900))
    await orchestrator.record_purchase(Decimal(5), Decimal(1000))


class TestOrchestratorLifecycle:
    """Tests for start and stop."""

    def test_start_and_stop(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            assert orchestrator.state.is_running
            await orchestrator.stop()
            return orchestrator

        orchestrator = run(scenario())
        stats = orchestrator.get_stats()
        assert stats["is_running"] is False
        assert stats["seller_stats"]["is_running"] is False

    def test_send_before_start_fails(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            with pytest.raises(RuntimeError):
                await orchestrator.record_purchase(Decimal(1), Decimal(100))

        run(scenario())

    def test_flush_before_start_fails(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            with pytest.raises(RuntimeError, match="not started"):
                await orchestrator.flush()

        run(scenario())

    def test_flush_after_stop_returns(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            await orchestrator.stop()
            await asyncio.wait_for(orchestrator.flush(), 2)
            return orchestrator

        orchestrator = run(scenario())
        assert orchestrator.seller.stats.messages_processed == 3

    def test_stats_before_start(self, sample_config):
        stats = Orchestrator(sample_config).get_stats()
        assert stats["seller_stats"] == {}
        assert stats["messages_sent"] == 0


class TestOrchestratorOffers:
    """Tests for offers flowing through the orchestrator."""

    def test_profitable_purchases_are_offered_and_filled(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            seen = []

            async def on_offer(offer):
                seen.append(offer)

            orchestrator.on_offer = on_offer
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            await orchestrator.publish_trend(Decimal(1000))
            await orchestrator.flush()
            await orchestrator.stop()
            return orchestrator, seen

        orchestrator, seen = run(scenario())
        # Default config: 0.25% fee, 5% minimum margin
        assert len(orchestrator.state.offers) == 1
        offer = orchestrator.state.offers[0]
        assert [p.rate for p in offer.purchases] == [Decimal(450), Decimal(900)]
        assert seen == [offer]

        stats = orchestrator.get_stats()
        assert stats["settlement_stats"]["offers_filled"] == 1
        assert stats["seller_stats"]["ledger_size"] == 1
        assert stats["purchases_reinjected"] == 0

    def test_unfilled_offer_is_reinjected(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            # The market drops before the offer at 1000 can be settled.
            await orchestrator.publish_trend(Decimal(1000))
            await orchestrator.publish_trend(Decimal(400))
            await orchestrator.flush()
            ledger_rates = [p.rate for p in orchestrator.seller.ledger.snapshot()]
            await orchestrator.stop()
            return orchestrator, ledger_rates

        orchestrator, ledger_rates = run(scenario())
        assert ledger_rates == [Decimal(450), Decimal(900), Decimal(1000)]
        stats = orchestrator.get_stats()
        assert stats["settlement_stats"]["offers_rejected"] == 1
        assert stats["purchases_reinjected"] == 2
        assert stats["seller_stats"]["purchases_received"] == 5

    def test_reinjected_purchases_can_sell_again(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            await orchestrator.publish_trend(Decimal(1000))
            await orchestrator.publish_trend(Decimal(400))
            await orchestrator.flush()
            await orchestrator.publish_trend(Decimal(1000))
            await orchestrator.flush()
            await orchestrator.stop()
            return orchestrator

        orchestrator = run(scenario())
        assert len(orchestrator.state.offers) == 2
        assert orchestrator.state.offers[0].purchases == orchestrator.state.offers[1].purchases
        assert orchestrator.settler.stats.offers_filled == 1

    def test_stale_trend_is_ignored(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            ten_minutes_ago = current_ts_ms() - 10 * 60 * 1000
            await orchestrator.publish_trend(Decimal(1000), observed_at=ten_minutes_ago)
            await orchestrator.flush()
            await orchestrator.stop()
            return orchestrator

        orchestrator = run(scenario())
        assert orchestrator.state.offers == []
        assert orchestrator.settler.latest_rate is None
        assert orchestrator.get_stats()["seller_stats"]["stale_readings"] == 1

    def test_without_settlement(self):
        config = Config.from_dict({"seller": {"fee_percent": "1", "min_margin_percent": "20"}})

        async def scenario():
            orchestrator = Orchestrator(config, settle=False)
            await orchestrator.start()
            await record_sample_purchases(orchestrator)
            await orchestrator.publish_trend(Decimal(1000))
            await orchestrator.flush()
            await orchestrator.stop()
            return orchestrator

        orchestrator = run(scenario())
        assert orchestrator.settler is None
        assert [p.rate for p in orchestrator.state.offers[0].purchases] == [Decimal(450)]
        assert orchestrator.get_stats()["settlement_stats"] == {}

    def test_string_inputs(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            await orchestrator.start()
            purchase = await orchestrator.record_purchase("0.5", "20000")
            await orchestrator.publish_trend("25000")
            await orchestrator.flush()
            await orchestrator.stop()
            return orchestrator, purchase

        orchestrator, purchase = run(scenario())
        assert purchase.quantity == Decimal("0.5")
        assert orchestrator.state.offers[0].purchases == (purchase,)

    def test_failing_callback_does_not_stall_flush(self, sample_config, caplog):
        async def scenario():
            orchestrator = Orchestrator(sample_config)

            async def on_offer(offer):
                raise RuntimeError("monitor failed")

            orchestrator.on_offer = on_offer
            await orchestrator.start()
            await orchestrator.record_purchase(Decimal(1), Decimal(100))
            await orchestrator.publish_trend(Decimal(1000))
            await asyncio.wait_for(orchestrator.flush(), 2)
            pump_alive = not orchestrator._pump_task.done()
            await orchestrator.stop()
            return orchestrator, pump_alive

        with caplog.at_level(logging.WARNING, logger="btc_broker.orchestrator"):
            orchestrator, pump_alive = run(scenario())

        assert pump_alive
        assert orchestrator.state.offers_received == 1
        assert orchestrator.settler.stats.offers_filled == 1
        assert "monitor failed" in caplog.text

    def test_pump_keeps_serving_after_callback_failure(self, sample_config):
        async def scenario():
            orchestrator = Orchestrator(sample_config)
            calls = []

            async def on_offer(offer):
                calls.append(offer)
                if len(calls) == 1:
                    raise RuntimeError("monitor failed")

            orchestrator.on_offer = on_offer
            await orchestrator.start()
            await orchestrator.record_purchase(Decimal(1), Decimal(100))
            await orchestrator.publish_trend(Decimal(1000))
            await asyncio.wait_for(orchestrator.flush(), 2)
            await orchestrator.record_purchase(Decimal(1), Decimal(200))
            await orchestrator.publish_trend(Decimal(1000))
            await asyncio.wait_for(orchestrator.flush(), 2)
            await orchestrator.stop()
            return orchestrator, calls

        orchestrator, calls = run(scenario())
        assert len(calls) == 2
        assert orchestrator.state.offers_received == 2
