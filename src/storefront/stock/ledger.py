"""Stock ledger: counter operations addressed by stock id.

A ``StockLedger`` lives for one unit of work (one command handler call). It
loads each counter at most once, so several operations on the same counter in
one handler see each other's effects and are persisted together.

``process_stock_command`` is the only way stock-touching commands are
dispatched. It serializes them within the process and retries the whole unit
of work when the optimistic version check on a counter fails, which covers
concurrent writers in other processes.
"""

import threading

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.domain import logger
from storefront.stock.counter import StockCounter

MAX_ATTEMPTS = 3

_stock_guard = threading.RLock()


def process_stock_command(command):
    """Run ``command`` synchronously as one serialized, retried unit of work."""
    attempt = 1
    while True:
        try:
            with _stock_guard:
                return current_domain.process(command, asynchronous=False)
        except ExpectedVersionError:
            if attempt >= MAX_ATTEMPTS:
                logger.error(
                    "Stock command failed after version conflicts",
                    command=type(command).__name__,
                    attempts=attempt,
                )
                raise
            logger.warning(
                "Stock counter version conflict, retrying",
                command=type(command).__name__,
                attempt=attempt,
            )
            attempt += 1


class StockLedger:
    def __init__(self) -> None:
        self._repo = current_domain.repository_for(StockCounter)
        self._counters: dict[str, StockCounter] = {}

    def counter(self, stock_id) -> StockCounter:
        key = str(stock_id)
        if key not in self._counters:
            try:
                self._counters[key] = self._repo.get(key)
            except ObjectNotFoundError as exc:
                raise ObjectNotFoundError({"stock_id": [f"No stock counter for {key}"]}) from exc
        return self._counters[key]

    def exists(self, stock_id) -> bool:
        try:
            self.counter(stock_id)
        except ObjectNotFoundError:
            return False
        return True

    def get_available(self, stock_id) -> int:
        return self.counter(stock_id).available

    def ensure_available(self, requirements: dict[str, int]) -> None:
        """Check every requirement before anything moves.

        Raises ``InsufficientStock`` for the first counter that falls short.
        """
        for stock_id, required in requirements.items():
            self.counter(stock_id).ensure_available(required)

    def adjust_reserved(self, stock_id, delta: int) -> int:
        counter = self.counter(stock_id)
        applied = counter.adjust_reserved(delta)
        if applied != delta:
            logger.warning(
                "Reservation release clamped at zero",
                stock_id=str(stock_id),
                requested=delta,
                applied=applied,
            )
        self._repo.add(counter)
        return applied

    def commit(self, stock_id, amount: int) -> None:
        """Sell ``amount`` units that were reserved beforehand."""
        self._take(stock_id, amount, held=amount)

    def deduct(self, stock_id, amount: int) -> None:
        """Sell ``amount`` units that were never reserved."""
        self._take(stock_id, amount, held=0)

    def _take(self, stock_id, amount: int, held: int) -> None:
        counter = self.counter(stock_id)
        shortfall = counter.commit(amount, held=held)
        if shortfall:
            logger.warning(
                "Stock oversold, on-hand clamped at zero",
                stock_id=str(stock_id),
                quantity=amount,
                shortfall=shortfall,
            )
        self._repo.add(counter)

    def receive(self, stock_id, amount: int) -> None:
        counter = self.counter(stock_id)
        counter.receive(amount)
        self._repo.add(counter)

    def set_safety_stock(self, stock_id, safety_stock: int) -> None:
        counter = self.counter(stock_id)
        counter.set_safety_stock(safety_stock)
        self._repo.add(counter)
