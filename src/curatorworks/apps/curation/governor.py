"""Daily spend ceiling and traffic sampling for paid vision calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Optional

from .errors import BudgetExceeded, InvalidInput
from .store import CurationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GovernorStatus:
    daily_budget: float
    daily_spend: float
    calls_made: int
    last_reset_date: date

    @property
    def remaining(self) -> float:
        return max(0.0, self.daily_budget - self.daily_spend)

    def to_dict(self) -> Dict[str, object]:
        return {
            "daily_budget": round(self.daily_budget, 4),
            "daily_spend": round(self.daily_spend, 4),
            "remaining": round(self.remaining, 4),
            "calls_made": self.calls_made,
            "last_reset_date": self.last_reset_date.isoformat(),
        }


class BudgetGovernor:
    """Owns the one piece of shared spend state; inject a single instance per process.

    The window is a calendar day taken from *clock*, not a rolling 24 hours.
    ``reserve`` performs check-then-increment under one lock so concurrent
    callers cannot overshoot the ceiling. With a *ledger* store the counters
    are read back before each reservation and saved after it, so separate
    processes sharing one store also share one daily budget.
    """

    def __init__(
        self,
        daily_budget: float,
        *,
        clock: Callable[[], date] = date.today,
        rng: Optional[random.Random] = None,
        ledger: Optional[CurationStore] = None,
    ) -> None:
        if daily_budget < 0:
            raise InvalidInput("daily_budget must be non-negative")
        self.daily_budget = float(daily_budget)
        self._clock = clock
        self._rng = rng or random.Random()
        self._ledger = ledger
        self._lock = asyncio.Lock()
        self.daily_spend = 0.0
        self.calls_made = 0
        self.last_reset_date = clock()

    def check_and_reset(self) -> bool:
        """Zero the counters when the calendar day has changed."""

        today = self._clock()
        if today == self.last_reset_date:
            return False
        logger.info(
            "Budget window rolled over %s -> %s (spent %.4f over %d calls)",
            self.last_reset_date,
            today,
            self.daily_spend,
            self.calls_made,
        )
        self.daily_spend = 0.0
        self.calls_made = 0
        self.last_reset_date = today
        return True

    def admit(self, sample_rate: float) -> bool:
        if not 0.0 <= sample_rate <= 1.0:
            raise InvalidInput(f"sample_rate must be within [0, 1], got {sample_rate}")
        # random() is in [0, 1) so a 0.0 draw would otherwise admit at rate 0.0
        if sample_rate <= 0.0:
            return False
        return self._rng.random() <= sample_rate

    async def reserve(self, estimated_cost: float) -> float:
        """Record *estimated_cost* against today's budget; returns the new spend."""

        if estimated_cost < 0:
            raise InvalidInput("estimated_cost must be non-negative")
        async with self._lock:
            await self._load_ledger()
            self.check_and_reset()
            if self.daily_spend + estimated_cost > self.daily_budget + 1e-9:
                logger.warning(
                    "Budget reservation refused: spent %.4f + %.4f > %.4f",
                    self.daily_spend,
                    estimated_cost,
                    self.daily_budget,
                )
                raise BudgetExceeded(
                    requested=estimated_cost,
                    spent=self.daily_spend,
                    budget=self.daily_budget,
                )
            self.daily_spend += estimated_cost
            self.calls_made += 1
            if self._ledger is not None:
                await self._ledger.save_budget_state(self.ledger_state())
            return self.daily_spend

    def ledger_state(self) -> Dict[str, object]:
        return {
            "daily_spend": self.daily_spend,
            "calls_made": self.calls_made,
            "last_reset_date": self.last_reset_date.isoformat(),
        }

    async def _load_ledger(self) -> None:
        if self._ledger is None:
            return
        state = await self._ledger.get_budget_state()
        if not state:
            return
        self.daily_spend = float(state.get("daily_spend") or 0.0)
        self.calls_made = int(state.get("calls_made") or 0)
        self.last_reset_date = date.fromisoformat(str(state["last_reset_date"]))

    async def refresh(self) -> GovernorStatus:
        """Status after reading counters written by other processes."""

        async with self._lock:
            await self._load_ledger()
        return self.status()

    def status(self) -> GovernorStatus:
        self.check_and_reset()
        return GovernorStatus(
            daily_budget=self.daily_budget,
            daily_spend=self.daily_spend,
            calls_made=self.calls_made,
            last_reset_date=self.last_reset_date,
        )


__all__ = ["BudgetGovernor", "GovernorStatus"]
