"""Core data types for the btc-broker system."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Tuple
import time
import uuid


# Bitcoin quantity.
Btc = Decimal
# How much hard currency one bitcoin costs.
BtcExchangeRate = Decimal
# Hard currency such as dollars.
Cash = Decimal
# A number expressed in percentage points, 10 means 10%.
Percentage = Decimal

HUNDRED = Decimal(100)


class FeeKind(Enum):
    """How the exchange takes its cut from a sale."""
    PERCENTAGE = auto()
    NONE = auto()


@dataclass(frozen=True)
class Fee:
    """Selling fee policy.

    Only the selling fee belongs here. The fee paid to buy the bitcoins is
    already part of each purchase's rate.
    """
    kind: FeeKind
    percent: Percentage = Decimal(0)

    @staticmethod
    def percentage(percent: Percentage) -> "Fee":
        """Exchange keeps `percent` points of the margin."""
        return Fee(kind=FeeKind.PERCENTAGE, percent=to_decimal(percent))

    @staticmethod
    def none() -> "Fee":
        """No selling fee."""
        return Fee(kind=FeeKind.NONE)

    def __str__(self) -> str:
        if self.kind == FeeKind.PERCENTAGE:
            return f"{self.percent}%"
        return "none"


def net_margin(gross_margin: Cash, fee: Fee) -> Cash:
    """Deduct the selling fee from a gross margin."""
    if fee.kind == FeeKind.PERCENTAGE:
        flat_fee = gross_margin / HUNDRED * fee.percent
        return gross_margin - flat_fee
    return gross_margin


@dataclass(frozen=True, eq=False)
class Purchase:
    """A past buy of bitcoin at some exchange rate.

    The rate already includes the fees paid to buy, so `quantity * rate` is
    exactly what the purchase cost. Two purchases are the same purchase when
    their ids match; the rate plays no part in equality.
    """
    id: uuid.UUID
    quantity: Btc
    rate: BtcExchangeRate

    @staticmethod
    def new(quantity: Btc, rate: BtcExchangeRate) -> "Purchase":
        """Create a purchase with a freshly generated id."""
        return Purchase(
            id=uuid.uuid4(),
            quantity=to_decimal(quantity),
            rate=to_decimal(rate),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Purchase):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def buying_price(self) -> Cash:
        """Total paid for this purchase, fees included."""
        return self.quantity * self.rate

    def margin(self, current_rate: BtcExchangeRate) -> Cash:
        """Profit from selling at `current_rate`, ignoring the selling fee."""
        return self.quantity * current_rate - self.buying_price

    def margin_after_fee(self, current_rate: BtcExchangeRate, fee: Fee) -> Cash:
        """Profit from selling at `current_rate` once the exchange took its cut."""
        return net_margin(self.margin(current_rate), fee)


@dataclass(frozen=True)
class Offer:
    """Purchases we propose to sell together at one rate.

    Purchases are ordered cheapest first, the order they left the ledger in.
    """
    id: uuid.UUID
    rate: BtcExchangeRate
    purchases: Tuple[Purchase, ...] = field(default_factory=tuple)

    @staticmethod
    def new(rate: BtcExchangeRate, purchases) -> "Offer":
        """Create an offer with a freshly generated id."""
        return Offer(id=uuid.uuid4(), rate=rate, purchases=tuple(purchases))

    @property
    def quantity(self) -> Btc:
        """Bitcoin offered in total."""
        return sum((p.quantity for p in self.purchases), Decimal(0))

    @property
    def cost_basis(self) -> Cash:
        """What the offered purchases cost us."""
        return sum((p.buying_price for p in self.purchases), Decimal(0))

    @property
    def proceeds(self) -> Cash:
        """What the offer brings in if sold at its rate, before fees."""
        return self.quantity * self.rate


def to_decimal(value) -> Decimal:
    """Convert config or user input to an exact Decimal.

    Floats go through their shortest repr so 0.1 becomes Decimal("0.1").
    """
    if isinstance(value, bool):
        raise TypeError(f"Expected a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def current_ts_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)
