"""
Tests for ChaosDelay.

Covers:
- Draws fall in [min, max)
- A disabled delay still yields but never sleeps
- Every sleep is recorded with its point name
"""

import random

import pytest

from exitonidle.chaos import ChaosDelay


class TestChaosDelayHappyPath:

    def test_draws_within_half_open_range(self) -> None:
        """Draws include the lower bound and exclude the upper."""
        chaos = ChaosDelay(max_ms=5, min_ms=2, rng=random.Random(3))

        draws = {chaos.draw() for _ in range(200)}

        assert draws == {2, 3, 4}

    @pytest.mark.asyncio
    async def test_sleep_records_history(self) -> None:
        """Each sleep is logged with its point and drawn delay."""
        chaos = ChaosDelay(max_ms=1, min_ms=1)

        await chaos.sleep("flushing")
        await chaos.sleep("exiting")

        assert chaos.history == [("flushing", 1), ("exiting", 1)]


class TestChaosDelayEdgeCases:

    def test_equal_bounds_draw_the_bound(self) -> None:
        """min == max always draws that value."""
        chaos = ChaosDelay(max_ms=50, min_ms=50)

        assert chaos.draw() == 50

    @pytest.mark.asyncio
    async def test_disabled_delay_is_zero(self) -> None:
        """The disabled delay sleeps for zero milliseconds."""
        chaos = ChaosDelay.disabled()

        assert await chaos.sleep("flushing") == 0

    def test_rejects_inverted_bounds(self) -> None:
        """An upper bound below the lower bound is refused."""
        with pytest.raises(ValueError):
            ChaosDelay(max_ms=1, min_ms=10)
