import asyncio
import random
from datetime import date, timedelta

import pytest

from curatorworks.apps.curation.errors import BudgetExceeded, InvalidInput
from curatorworks.apps.curation.governor import BudgetGovernor
from curatorworks.apps.curation.store import JsonFileStore


class _Clock:
    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


def test_second_reservation_over_budget_fails_until_rollover():
    async def _run():
        clock = _Clock(date(2026, 3, 1))
        governor = BudgetGovernor(1.00, clock=clock)

        assert await governor.reserve(0.6) == pytest.approx(0.6)
        with pytest.raises(BudgetExceeded) as excinfo:
            await governor.reserve(0.6)
        assert excinfo.value.spent == pytest.approx(0.6)
        assert governor.daily_spend == pytest.approx(0.6)

        clock.today += timedelta(days=1)
        assert await governor.reserve(0.6) == pytest.approx(0.6)
        assert governor.last_reset_date == date(2026, 3, 2)

    asyncio.run(_run())


def test_reserving_exactly_the_ceiling_is_allowed():
    async def _run():
        governor = BudgetGovernor(1.0)
        await governor.reserve(0.6)
        await governor.reserve(0.4)
        assert governor.status().remaining == pytest.approx(0.0)

    asyncio.run(_run())


def test_concurrent_reservations_never_overshoot():
    async def _run():
        governor = BudgetGovernor(1.0)
        results = await asyncio.gather(
            *(governor.reserve(0.1) for _ in range(25)), return_exceptions=True
        )
        accepted = [item for item in results if not isinstance(item, Exception)]
        refused = [item for item in results if isinstance(item, BudgetExceeded)]
        assert len(accepted) == 10
        assert len(refused) == 15
        assert governor.daily_spend <= 1.0 + 1e-9

    asyncio.run(_run())


def test_rollover_is_calendar_based_not_duration_based():
    clock = _Clock(date(2026, 3, 1))
    governor = BudgetGovernor(1.0, clock=clock)
    governor.daily_spend = 0.9

    assert governor.check_and_reset() is False
    clock.today = date(2026, 3, 2)
    assert governor.check_and_reset() is True
    assert governor.daily_spend == 0.0


def test_sample_rate_zero_never_admits():
    governor = BudgetGovernor(1.0, rng=random.Random(1))

    assert not any(governor.admit(0.0) for _ in range(10_000))


def test_sample_rate_one_always_admits():
    governor = BudgetGovernor(1.0, rng=random.Random(1))

    assert all(governor.admit(1.0) for _ in range(10_000))


def test_zero_draw_does_not_admit_at_rate_zero():
    class _ZeroRng(random.Random):
        def random(self):
            return 0.0

    assert BudgetGovernor(1.0, rng=_ZeroRng()).admit(0.0) is False


def test_sample_rate_out_of_range_is_invalid():
    with pytest.raises(InvalidInput):
        BudgetGovernor(1.0).admit(1.5)


def test_status_snapshot():
    async def _run():
        governor = BudgetGovernor(2.0, clock=_Clock(date(2026, 1, 5)))
        await governor.reserve(0.5)
        return governor.status().to_dict()

    status = asyncio.run(_run())

    assert status == {
        "daily_budget": 2.0,
        "daily_spend": 0.5,
        "remaining": 1.5,
        "calls_made": 1,
        "last_reset_date": "2026-01-05",
    }


def test_ledger_carries_spend_across_governors(tmp_path):
    path = tmp_path / "store.json"
    clock = _Clock(date(2026, 4, 2))

    def _governor():
        return BudgetGovernor(0.007, clock=clock, ledger=JsonFileStore(path))

    async def _run():
        spends = [await _governor().reserve(0.002) for _ in range(3)]
        refused = _governor()
        with pytest.raises(BudgetExceeded):
            await refused.reserve(0.002)
        status = await _governor().refresh()
        clock.today += timedelta(days=1)
        next_day = await _governor().reserve(0.002)
        return spends, status, next_day

    spends, status, next_day = asyncio.run(_run())

    assert spends == [pytest.approx(0.002), pytest.approx(0.004), pytest.approx(0.006)]
    assert status.daily_spend == pytest.approx(0.006)
    assert status.calls_made == 3
    assert next_day == pytest.approx(0.002)
