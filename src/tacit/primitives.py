"""
Order-preserving parallel primitives over sequences.

Invocations run as asyncio tasks on the current event loop. Results are
assembled by index, so output order never depends on completion order.
"""

from __future__ import annotations
from typing import TypeVar, Callable, Awaitable, Any
from collections.abc import Sequence
import asyncio
import functools
import inspect
import logging

from .errors import TypeMismatchError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

MapFunc = Callable[[T, int], Awaitable[R] | R]


def adapt(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Let fn be called with more positional arguments than it declares.

    Callbacks receive (value, context) or (item, index, context), but most
    only need the leading ones. The arity is read once here; extra trailing
    arguments are dropped on each call. Callables taking *args, and those
    without an inspectable signature, get every argument.
    """
    try:
        parameters = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return fn
    if any(p.kind is p.VAR_POSITIONAL for p in parameters):
        return fn
    positional = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    arity = sum(1 for p in parameters if p.kind in positional)

    @functools.wraps(fn)
    def call(*args):
        return fn(*args[:arity])
    return call


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call fn, awaiting the result if it is awaitable.

    Lets callers pass sync and async callbacks interchangeably.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def as_sequence(value: Any, operator: str) -> list:
    """Return value as a list, or raise TypeMismatchError.

    Strings and bytes are sequences to Python but not to a pipeline of items.
    """
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return list(value)
    raise TypeMismatchError(operator, value)


async def map(
    items: Sequence[T],
    fn: MapFunc[T, R],
    concurrency: int | None = None,
) -> list[R]:
    """
    Apply fn(item, index) to every item with at most `concurrency` in flight.

    fn may take only the item; see `adapt`.

    Uses a sliding window: a new index is dispatched as soon as any
    in-flight invocation settles. With concurrency=None every invocation is
    dispatched at once.

    Fails fast: the first failure observed stops further dispatch, already
    running invocations are awaited, then the failure is raised unchanged.

    Example:
        async def fetch(url: str, i: int) -> bytes:
            ...

        pages = await map(urls, fetch, concurrency=4)
    """
    items = list(items)
    fn = adapt(fn)
    if concurrency is not None and concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")
    if not items:
        return []

    limit = len(items) if concurrency is None else min(concurrency, len(items))
    results: list[Any] = [None] * len(items)
    active: dict[asyncio.Task, int] = {}
    cursor = 0
    failure: BaseException | None = None

    try:
        while True:
            while failure is None and cursor < len(items) and len(active) < limit:
                task = asyncio.ensure_future(invoke(fn, items[cursor], cursor))
                active[task] = cursor
                logger.debug("dispatched index %d (%d active)", cursor, len(active))
                cursor += 1

            if not active:
                break

            done, _ = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=active.__getitem__):
                index = active.pop(task)
                error = task.exception()
                if error is not None:
                    logger.debug("index %d failed: %r", index, error)
                    if failure is None:
                        failure = error
                    continue
                results[index] = task.result()
    finally:
        for task in active:
            task.cancel()

    if failure is not None:
        raise failure
    return results


async def filter(
    items: Sequence[T],
    fn: MapFunc[T, bool],
    concurrency: int | None = None,
) -> list[T]:
    """Keep items for which fn(item, index) is truthy, in original order."""
    items = list(items)
    keep = await map(items, fn, concurrency)
    return [item for item, kept in zip(items, keep) if kept]
