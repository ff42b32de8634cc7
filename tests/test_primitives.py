"""Tests for the bounded parallel map and filter."""

import asyncio
import pytest
from tacit import map, filter, invoke, TypeMismatchError
from tacit.primitives import adapt, as_sequence


class InFlight:
    """Tracks how many invocations run at the same time."""

    def __init__(self):
        self.current = 0
        self.peak = 0
        self.started: list[int] = []
        self.finished: list[int] = []

    async def run(self, index: int, delay: float, result=None):
        self.current += 1
        self.peak = max(self.peak, self.current)
        self.started.append(index)
        try:
            await asyncio.sleep(delay)
        finally:
            self.current -= 1
            self.finished.append(index)
        return result


class TestInvoke:
    @pytest.mark.asyncio
    async def test_sync_function(self):
        assert await invoke(lambda a, b: a + b, 1, 2) == 3

    @pytest.mark.asyncio
    async def test_async_function(self):
        async def add(a, b):
            await asyncio.sleep(0)
            return a + b

        assert await invoke(add, 1, 2) == 3

    @pytest.mark.asyncio
    async def test_sync_exception_raised_when_awaited(self):
        def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await invoke(boom)


class TestAdapt:
    def test_drops_extra_arguments(self):
        assert adapt(lambda a: a)(1, 2, 3) == 1
        assert adapt(lambda a, b: (a, b))(1, 2, 3) == (1, 2)
        assert adapt(lambda: "none")(1, 2) == "none"

    def test_var_positional_gets_everything(self):
        fn = lambda *args: args
        assert adapt(fn) is fn
        assert adapt(lambda a, *rest: rest)(1, 2, 3) == (2, 3)

    def test_keeps_name(self):
        def named(value):
            return value

        assert adapt(named).__name__ == "named"

    @pytest.mark.asyncio
    async def test_async_function(self):
        async def one(value):
            return value + 1

        assert await invoke(adapt(one), 1, "extra") == 2


class TestAsSequence:
    def test_list_and_tuple(self):
        assert as_sequence([1, 2], "mapcar") == [1, 2]
        assert as_sequence((1, 2), "mapcar") == [1, 2]

    def test_rejects_non_sequences(self):
        for value in (42, None, {"a": 1}, "abc", b"abc"):
            with pytest.raises(TypeMismatchError, match="mapcar requires a sequence value"):
                as_sequence(value, "mapcar")

    def test_error_is_a_type_error(self):
        with pytest.raises(TypeError):
            as_sequence(42, "filter")


class TestMap:
    @pytest.mark.asyncio
    async def test_empty(self):
        calls = []
        assert await map([], lambda x, i: calls.append(x)) == []
        assert await map([], lambda x, i: calls.append(x), concurrency=2) == []
        assert calls == []

    @pytest.mark.asyncio
    async def test_sync_function(self):
        assert await map([1, 2, 3], lambda x, i: x * 10 + i) == [10, 21, 32]

    @pytest.mark.asyncio
    async def test_item_only_function(self):
        assert await map([1, 2, 3], lambda x: x * 2, concurrency=2) == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_preserves_order_despite_completion_order(self):
        delays = [100, 10, 80, 20, 90, 5, 70, 30]
        tracker = InFlight()

        async def slow(x, i):
            return await tracker.run(i, delays[i] / 1000, result=x)

        result = await map(list(range(8)), slow, concurrency=3)
        assert result == [0, 1, 2, 3, 4, 5, 6, 7]
        assert tracker.finished != sorted(tracker.finished)
        assert tracker.peak == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 2, 3, 5])
    async def test_never_exceeds_concurrency(self, concurrency):
        tracker = InFlight()

        async def work(x, i):
            return await tracker.run(i, 0.001 * (x % 3), result=x * 2)

        items = list(range(12))
        assert await map(items, work, concurrency=concurrency) == [x * 2 for x in items]
        assert 0 < tracker.peak <= concurrency

    @pytest.mark.asyncio
    async def test_unbounded_dispatches_everything(self):
        tracker = InFlight()

        async def work(x, i):
            return await tracker.run(i, 0.01)

        await map(list(range(10)), work)
        assert tracker.peak == 10

    @pytest.mark.asyncio
    async def test_concurrency_above_length_is_unbounded(self):
        tracker = InFlight()

        async def work(x, i):
            return await tracker.run(i, 0.01)

        await map([1, 2, 3], work, concurrency=50)
        assert tracker.peak == 3

    @pytest.mark.asyncio
    async def test_concurrency_one_is_sequential(self):
        events = []

        async def work(x, i):
            events.append(("start", i))
            await asyncio.sleep(0.001)
            events.append(("end", i))
            return x

        await map([0, 1, 2], work, concurrency=1)
        assert events == [
            ("start", 0), ("end", 0),
            ("start", 1), ("end", 1),
            ("start", 2), ("end", 2),
        ]

    @pytest.mark.asyncio
    async def test_starts_in_index_order(self):
        tracker = InFlight()

        async def work(x, i):
            return await tracker.run(i, 0.001 * (5 - i))

        await map(list(range(6)), work, concurrency=2)
        assert tracker.started == list(range(6))

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            await map([1], lambda x, i: x, concurrency=0)

    @pytest.mark.asyncio
    async def test_fail_fast(self):
        async def work(x, i):
            await asyncio.sleep(0.001 * x)
            if x == 3:
                raise RuntimeError(f"failed on {x}")
            return x

        with pytest.raises(RuntimeError, match="failed on 3"):
            await map([1, 2, 3, 4, 5], work, concurrency=2)

    @pytest.mark.asyncio
    async def test_failure_stops_dispatch_but_awaits_running(self):
        started = []
        finished = []

        async def work(x, i):
            started.append(x)
            if x == 1:
                await asyncio.sleep(0.001)
                raise RuntimeError("first")
            await asyncio.sleep(0.02)
            finished.append(x)
            return x

        with pytest.raises(RuntimeError, match="first"):
            await map([1, 2, 3, 4, 5], work, concurrency=2)

        assert started == [1, 2]
        assert finished == [2]

    @pytest.mark.asyncio
    async def test_original_exception_is_not_wrapped(self):
        error = KeyError("missing")

        def work(x, i):
            raise error

        with pytest.raises(KeyError) as info:
            await map([1], work)
        assert info.value is error


class TestFilter:
    @pytest.mark.asyncio
    async def test_keeps_matching_in_order(self):
        async def is_even(x, i):
            await asyncio.sleep(0.001 * (10 - x))
            return x % 2 == 0

        assert await filter(list(range(10)), is_even) == [0, 2, 4, 6, 8]

    @pytest.mark.asyncio
    async def test_index_available(self):
        assert await filter(["a", "b", "c", "d"], lambda x, i: i % 2 == 0) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_bounded(self):
        tracker = InFlight()

        async def keep(x, i):
            return await tracker.run(i, 0.001, result=x > 2)

        assert await filter([1, 2, 3, 4, 5], keep, concurrency=2) == [3, 4, 5]
        assert tracker.peak == 2
