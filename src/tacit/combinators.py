"""
Pipeline operators built on `then`.

Each operator only registers handlers through `then`, so it inherits the
context sharing and rejection rules of TacitFuture unchanged.
"""

from __future__ import annotations
from typing import Any, Callable, Iterable, TYPE_CHECKING
import logging

from . import primitives
from .primitives import adapt, as_sequence, invoke
from .types import Context

if TYPE_CHECKING:
    from .future import TacitFuture

logger = logging.getLogger(__name__)

Sink = Callable[[dict[str, Any]], Any]


def log_sink(entry: dict[str, Any]) -> None:
    """Default `tee` sink: log the entry at INFO."""
    logger.info(
        "[%s] value=%r context=%r", entry["label"], entry["value"], entry["context"]
    )


def project(context: Context, fields: Iterable[str] | None) -> Context:
    """Full context for None, otherwise only the listed keys that are present."""
    if fields is None:
        return dict(context)
    return {key: context[key] for key in fields if key in context}


class Combinators:
    """Operators mixed into TacitFuture, which supplies `then`.

    Callbacks may declare fewer parameters than they are offered:
    `when(lambda v: v > 5, notify)` works as well as `(value, context)`.
    """

    def tap(self, key: str) -> TacitFuture:
        """Store the current value in context[key]; the value passes through."""
        def store(value, context):
            context[key] = value
            return value
        return self.then(store)

    def map(self, fn: Callable[[Any], Any]) -> TacitFuture:
        """Replace the value with fn(value). fn may be async; it never sees the context."""
        return self.then(lambda value, context: invoke(fn, value))

    def when(
        self,
        predicate: Callable[[Any, Context], Any],
        fn: Callable[[Any, Context], Any],
    ) -> TacitFuture:
        """
        Run fn(value, context) for its side effects if predicate(value, context) holds.

        The result of fn is discarded: the value always passes through
        unchanged. Either callback may be async.
        """
        predicate, fn = adapt(predicate), adapt(fn)

        async def run(value, context):
            if await invoke(predicate, value, context):
                await invoke(fn, value, context)
            return value
        return self.then(run)

    def filter(
        self,
        fn: Callable[[Any, int, Context], Any],
        concurrency: int | None = None,
    ) -> TacitFuture:
        """
        Keep the items of a sequence value for which fn(item, index, context) holds.

        All predicates are started before any result is used, unless
        `concurrency` caps them. Order of the kept items is preserved.
        """
        fn = adapt(fn)

        async def run(value, context):
            items = as_sequence(value, "filter")
            return await primitives.filter(
                items, lambda item, index: fn(item, index, context), concurrency
            )
        return self.then(run)

    def mapcar(
        self,
        fn: Callable[[Any, int, Context], Any],
        concurrency: int | None = None,
    ) -> TacitFuture:
        """
        Map fn(item, index, context) over a sequence value, in input order.

        At most `concurrency` invocations are in flight at once; None means
        no limit. The first failure rejects the stage.
        """
        fn = adapt(fn)

        async def run(value, context):
            items = as_sequence(value, "mapcar")
            return await primitives.map(
                items, lambda item, index: fn(item, index, context), concurrency
            )
        return self.then(run)

    def focus(self, key: str) -> TacitFuture:
        """Make context[key] the current value. Rejects with KeyError if absent."""
        return self.then(lambda value, context: context[key])

    extract = focus

    def tee(
        self,
        label: str | None = None,
        fields: Iterable[str] | None = None,
        sink: Sink | None = None,
    ) -> TacitFuture:
        """
        Send {label, value, context} to sink without changing anything.

        `fields` selects which context keys are shown: None for all, an
        empty list for none. The sink defaults to logging at INFO.
        """
        sink = adapt(sink or log_sink)

        async def run(value, context):
            entry = {"label": label, "value": value, "context": project(context, fields)}
            await invoke(sink, entry)
            return value
        return self.then(run)

    def finally_(self, fn: Callable[[Context], Any]) -> TacitFuture:
        """
        Run fn(context) once however the future settles.

        The value or the original rejection passes through afterwards, unless
        fn itself raises, in which case its error wins.
        """
        fn = adapt(fn)

        async def on_fulfilled(value, context):
            await invoke(fn, context)
            return value

        async def on_rejected(reason, context):
            await invoke(fn, context)
            raise reason
        return self.then(on_fulfilled, on_rejected)
