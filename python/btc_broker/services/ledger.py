"""Purchase ledger ordered by buy rate.

The purchase bought at the lowest rate is the best one we hold, so the
ledger is a min-heap on rate. Purchases with equal rates leave in the order
they were inserted.
"""

import heapq
import itertools
from typing import List, Optional, Tuple

from ..models.types import BtcExchangeRate, Purchase


# (rate, insertion sequence, purchase). The sequence keeps heap comparisons
# away from Purchase, which defines no ordering.
_Entry = Tuple[BtcExchangeRate, int, Purchase]


class PurchaseLedger:
    """Unsold purchases, best (cheapest) first.

    Owned by exactly one seller; not safe to share between tasks.
    """

    def __init__(self):
        self._heap: List[_Entry] = []
        self._sequence = itertools.count()

    def insert(self, purchase: Purchase) -> None:
        """Add a purchase. Ids are not checked for uniqueness."""
        heapq.heappush(self._heap, (purchase.rate, next(self._sequence), purchase))

    def peek_best(self) -> Optional[Purchase]:
        """Purchase with the lowest rate, left in place."""
        if not self._heap:
            return None
        return self._heap[0][2]

    def pop_best(self) -> Optional[Purchase]:
        """Remove and return the purchase `peek_best` would return."""
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def snapshot(self) -> List[Purchase]:
        """All purchases, best first, without touching the ledger."""
        return [entry[2] for entry in sorted(self._heap)]

    def copy(self) -> "PurchaseLedger":
        """Independent ledger holding the same purchases in the same order."""
        other = PurchaseLedger()
        other._heap = list(self._heap)
        # Continue numbering past every entry we copied.
        start = max((entry[1] for entry in self._heap), default=-1) + 1
        other._sequence = itertools.count(start)
        return other

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def __repr__(self) -> str:
        best = self.peek_best()
        best_rate = best.rate if best is not None else None
        return f"PurchaseLedger(size={len(self)}, best_rate={best_rate})"
