"""Tests for all-or-nothing limit groups."""

import math
from unittest.mock import AsyncMock

import pytest

from trafficjam.core.errors import QuotaExceeded
from trafficjam.core.limit_group import LimitGroup


@pytest.fixture
def per_minute(make_limit):
    return make_limit(action="per_minute", max=2, period=60)


@pytest.fixture
def per_hour(make_limit):
    return make_limit(action="per_hour", max=3, period=3600)


@pytest.fixture
def group(per_minute, per_hour, clock) -> LimitGroup:
    return LimitGroup([per_minute, per_hour], clock=clock)


class TestMembership:
    def test_flattens_nested_groups_and_lists(self, per_minute, per_hour, make_limit) -> None:
        daily = make_limit(action="daily", max=10, period=86400)
        inner = LimitGroup([per_minute, [per_hour]])

        group = LimitGroup([inner, daily])

        assert group.flatten() == [per_minute, per_hour, daily]
        assert len(group) == 3

    def test_push_returns_member_count(self, per_minute, per_hour) -> None:
        group = LimitGroup()
        assert group.push(per_minute) == 1
        assert group.push(LimitGroup([per_hour])) == 2

    def test_rejects_non_limits(self) -> None:
        with pytest.raises(TypeError):
            LimitGroup(["not-a-limit"])


class TestIncrement:
    @pytest.mark.asyncio
    async def test_increments_every_member(self, group, per_minute, per_hour) -> None:
        assert await group.increment() is True

        assert await per_minute.used() == 1
        assert await per_hour.used() == 1

    @pytest.mark.asyncio
    async def test_rejection_rolls_back_accepted_members(self, group, per_minute, per_hour) -> None:
        assert await group.increment(2) is True

        # per_minute is full; per_hour would accept a third unit.
        assert await group.increment(1) is False

        assert await per_minute.used() == 2
        assert await per_hour.used() == 2

    @pytest.mark.asyncio
    async def test_member_error_rolls_back_and_propagates(
        self, group, per_minute, per_hour, make_limit
    ) -> None:
        failing_store = AsyncMock()
        failing_store.get.side_effect = ConnectionError("store down")
        group.push(make_limit(action="broken", store=failing_store))

        with pytest.raises(ConnectionError):
            await group.increment(1)

        assert await per_minute.used() == 0
        assert await per_hour.used() == 0

    @pytest.mark.asyncio
    async def test_increment_or_raise_names_rejecting_limit(self, group, per_minute) -> None:
        await group.increment(2)

        with pytest.raises(QuotaExceeded) as exc_info:
            await group.increment_or_raise(1)

        assert exc_info.value.limit is per_minute

    @pytest.mark.asyncio
    async def test_increment_or_raise_returns_true(self, group) -> None:
        assert await group.increment_or_raise(1) is True


class TestQueries:
    @pytest.mark.asyncio
    async def test_decrement_applies_to_all(self, group, per_minute, per_hour) -> None:
        await group.increment(2)

        assert await group.decrement(1) is True

        assert await per_minute.used() == 1
        assert await per_hour.used() == 1

    @pytest.mark.asyncio
    async def test_would_exceed_and_limit_exceeded(self, group, per_minute) -> None:
        await group.increment(1)

        assert await group.would_exceed(1) is False
        assert await group.limit_exceeded(1) is None

        assert await group.would_exceed(2) is True
        assert await group.limit_exceeded(2) is per_minute

    @pytest.mark.asyncio
    async def test_remaining_is_smallest_member(self, group) -> None:
        await group.increment(1)
        assert await group.remaining() == 1

    @pytest.mark.asyncio
    async def test_remaining_of_empty_group_is_infinite(self) -> None:
        assert await LimitGroup().remaining() == math.inf

    @pytest.mark.asyncio
    async def test_reset_clears_every_member(self, group, per_minute, per_hour) -> None:
        await group.increment(2)
        await group.reset()

        assert await per_minute.used() == 0
        assert await per_hour.used() == 0
