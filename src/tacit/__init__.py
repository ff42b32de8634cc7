"""
Tacit: async pipelines with an implicit, shared context.

Provides a future-like value that carries a mutable context dict through a
chain of continuations, plus order-preserving parallel map and filter with
an optional concurrency limit.

Usage:
    from tacit import create, begin

    # Thread state through a pipeline
    value, context = await (
        create({"min_size": 10})
        .then(lambda _, ctx: list_files())
        .tap("all_files")
        .filter(lambda f, i, ctx: f.size >= ctx["min_size"])
        .mapcar(lambda f, i, ctx: checksum(f), concurrency=8)
        .to_object()
    )

    # Bounded parallel map on its own
    results = await map(items, fetch, concurrency=4)
"""

from .future import TacitFuture, create, begin
from .primitives import map, filter, invoke
from .errors import TacitError, TypeMismatchError
from .types import Context, Outcome, Resolved, State

__version__ = "0.1.0"
__all__ = [
    # Contextual future
    "TacitFuture",
    "create",
    "begin",
    # Parallel primitives
    "map",
    "filter",
    "invoke",
    # Errors
    "TacitError",
    "TypeMismatchError",
    # Types
    "Context",
    "Outcome",
    "Resolved",
    "State",
]
