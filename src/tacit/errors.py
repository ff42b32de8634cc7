"""Errors raised by tacit itself.

Failures coming from caller-supplied callbacks are never wrapped: they
travel down the chain as the original exception object.
"""


class TacitError(Exception):
    """Base class for errors raised by the library."""


class TypeMismatchError(TacitError, TypeError):
    """A sequence operator was applied to a value that is not a sequence."""

    def __init__(self, operator: str, value: object):
        self.operator = operator
        self.value = value
        super().__init__(f"{operator} requires a sequence value")
