"""Shared types for contextual futures."""

from __future__ import annotations
from typing import Any, Generic, NamedTuple, TypeVar
from dataclasses import dataclass
from enum import Enum

T = TypeVar("T")

Context = dict[str, Any]


class State(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class Outcome(Generic[T]):
    """Settled payload of a future: (value, context) or (reason, context)."""
    context: Context
    value: T | None = None
    reason: BaseException | None = None

    @property
    def rejected(self) -> bool:
        return self.reason is not None

    @property
    def state(self) -> State:
        return State.REJECTED if self.rejected else State.FULFILLED


class Resolved(NamedTuple):
    """Value and context of a fulfilled future."""
    value: Any
    context: Context
