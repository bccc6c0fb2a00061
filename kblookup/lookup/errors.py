"""
Errors raised by the lookup engine.

Parse errors mean the text is not a valid lookup expression. Evaluation
errors mean a well-formed expression could not be applied (e.g. ``this``
with no current entry). Database errors are never wrapped: they are
SQLAlchemy's own exceptions and reach the caller unchanged.
"""
from typing import Optional


class LookupEngineError(Exception):
    """Base class for lookup engine errors."""
    pass


class LookupParseError(LookupEngineError):
    """The lookup expression text could not be parsed."""

    def __init__(self, message: str, text: str = "", position: Optional[int] = None):
        self.text = text
        self.position = position
        if position is not None:
            message = f"{message} (at position {position} in {text!r})"
        elif text:
            message = f"{message} (in {text!r})"
        super().__init__(message)


class LookupEvaluationError(LookupEngineError):
    """A parsed expression failed during evaluation."""
    pass
