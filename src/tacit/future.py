"""
Futures that carry a mutable context alongside their value.

A TacitFuture pairs an eventual value (or failure) with a context dict.
Continuations registered with `then` receive `(value, context)` instead of
just the value, so pipeline stages can share state without passing it
around explicitly.
"""

from __future__ import annotations
from typing import TypeVar, Generic, Callable, Any, Generator
import asyncio
import inspect
import logging

from .combinators import Combinators
from .primitives import adapt
from .types import Context, Outcome, Resolved, State

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[Any, Context], Any]


def merge(context: Context, other: Context) -> Context:
    """Overlay other onto context in place, last write wins."""
    if other is not context:
        context.update(other)
    return context


class TacitFuture(Combinators, Generic[T]):
    """
    An awaitable value paired with a context that flows down the pipeline.

    Each stage created by `then` (or any combinator) owns a copy of its
    receiver's context and overlays the receiver's settled context before
    its handler runs, so writes made by one stage are seen by every later
    one, while upstream stages and sibling branches are left alone.
    Contexts carried by nested futures returned from handlers are merged
    the same way.

    A rejection nobody consumes is reported through the event loop's
    exception handler, like any asyncio task exception never retrieved.

    Settled futures need no event loop; `then` schedules its continuation
    on the running loop right away, like a promise.

    Example:
        result = await (
            create({"user": "alice"})
            .then(lambda _, ctx: load_orders(ctx["user"]))
            .tap("orders")
            .mapcar(lambda order, i, ctx: price(order), concurrency=4)
            .map(sum)
        )
    """

    def __init__(
        self,
        context: Context,
        outcome: Outcome | None = None,
        task: asyncio.Task | None = None,
    ):
        self._context = context
        self._outcome = outcome
        self._task = task

    @classmethod
    def create(cls, initial_context: Context | None = None) -> TacitFuture[None]:
        """Future fulfilled with None and a shallow copy of initial_context."""
        return cls.begin(None, initial_context)

    @classmethod
    def begin(cls, value: T, context: Context | None = None) -> TacitFuture[T]:
        """Future fulfilled with value and a shallow copy of context."""
        context = dict(context or {})
        return cls(context, Outcome(context, value))

    @property
    def context(self) -> Context:
        return self._context

    @property
    def state(self) -> State:
        if self._outcome is not None:
            return self._outcome.state
        if self._task is None or not self._task.done():
            return State.PENDING
        if self._task.cancelled() or self._task.exception() is not None:
            return State.REJECTED
        return State.FULFILLED

    def done(self) -> bool:
        return self.state is not State.PENDING

    async def _settle(self) -> Outcome:
        if self._outcome is None:
            try:
                value = await self._task
            except Exception as exc:
                self._outcome = Outcome(self._context, reason=exc)
            else:
                self._outcome = Outcome(self._context, value)
        return self._outcome

    def then(
        self,
        on_fulfilled: Handler | None = None,
        on_rejected: Handler | None = None,
    ) -> TacitFuture:
        """
        Register handlers and return the future of their result.

        A missing handler forwards the payload unchanged. Handlers may return
        plain values, awaitables or other TacitFutures; exceptions they raise
        become rejections carrying the context.
        """
        loop = asyncio.get_running_loop()
        context = dict(self._context)
        on_fulfilled = on_fulfilled and adapt(on_fulfilled)
        on_rejected = on_rejected and adapt(on_rejected)
        task = loop.create_task(self._continue(context, on_fulfilled, on_rejected))
        return TacitFuture(context, task=task)

    def catch(self, on_rejected: Handler) -> TacitFuture:
        return self.then(None, on_rejected)

    async def _continue(
        self,
        context: Context,
        on_fulfilled: Handler | None,
        on_rejected: Handler | None,
    ) -> Any:
        outcome = await self._settle()
        merge(context, outcome.context)

        handler = on_rejected if outcome.rejected else on_fulfilled
        if handler is None:
            if outcome.rejected:
                raise outcome.reason
            return outcome.value

        payload = outcome.reason if outcome.rejected else outcome.value
        try:
            result = handler(payload, context)
            if isinstance(result, TacitFuture):
                nested = await result._settle()
                merge(context, nested.context)
                if nested.rejected:
                    raise nested.reason
                return nested.value
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.debug("handler %r rejected: %r", handler, exc)
            raise
        return result

    async def get_value(self) -> T:
        """Value of the future; raises the original reason on rejection."""
        outcome = await self._settle()
        if outcome.rejected:
            raise outcome.reason
        return outcome.value

    async def get_context(self) -> Context:
        """Context of the future, whichever way it settled."""
        outcome = await self._settle()
        return outcome.context

    async def to_object(self) -> Resolved:
        """Value and context together; raises the original reason on rejection."""
        outcome = await self._settle()
        if outcome.rejected:
            raise outcome.reason
        return Resolved(outcome.value, outcome.context)

    def __await__(self) -> Generator[Any, None, T]:
        return self.get_value().__await__()

    def __repr__(self) -> str:
        return f"<TacitFuture {self.state.value} context={self._context!r}>"


create = TacitFuture.create
begin = TacitFuture.begin
