"""Pytest configuration and fixtures."""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add the python package to the path
PACKAGE_DIR = Path(__file__).parent.parent / "python"
sys.path.insert(0, str(PACKAGE_DIR))

from btc_broker.config import Config
from btc_broker.models.types import Fee, Purchase
from btc_broker.services.ledger import PurchaseLedger


class FakeClock:
    """Settable epoch-ms clock for staleness checks."""

    def __init__(self, now_ms: int = 1704067200000):  # 2024-01-01 00:00:00 UTC
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def sample_config() -> Config:
    """Create a sample configuration for testing."""
    return Config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def one_percent_fee() -> Fee:
    return Fee.percentage(Decimal(1))


@pytest.fixture
def purchase_for_450() -> Purchase:
    return Purchase.new(Decimal(5), Decimal(450))


@pytest.fixture
def purchase_for_900() -> Purchase:
    return Purchase.new(Decimal(1), Decimal(900))


@pytest.fixture
def purchase_for_1000() -> Purchase:
    return Purchase.new(Decimal(5), Decimal(1000))


@pytest.fixture
def sample_ledger(purchase_for_450, purchase_for_900, purchase_for_1000) -> PurchaseLedger:
    """Ledger with three purchases, inserted out of rate order."""
    ledger = PurchaseLedger()
    ledger.insert(purchase_for_1000)
    ledger.insert(purchase_for_450)
    ledger.insert(purchase_for_900)
    return ledger
