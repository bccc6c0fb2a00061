"""
Evaluation context for lookup expressions.
"""
from dataclasses import dataclass, replace
from typing import Optional, TYPE_CHECKING

from .errors import LookupEvaluationError
from .values import ConcreteValue, ErrorValue, LookupValue

if TYPE_CHECKING:
    from .backend import GraphTransaction
    from .expressions import LookupExpression

DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class LookupContext:
    """
    Everything an expression needs to evaluate.

    Contexts are never modified. An expression that needs a different
    current entry derives a new context with with_entry().

    Attributes:
        tx: The graph transaction owned by this evaluation
        site_id: Site whose entries may be returned
        entry_id: The current entry ("this"), if any
        default_page_size: Page size for lazy entry sets that aren't sliced
    """
    tx: "GraphTransaction"
    site_id: str
    entry_id: Optional[str] = None
    default_page_size: int = DEFAULT_PAGE_SIZE

    def with_entry(self, entry_id: Optional[str]) -> "LookupContext":
        """Return a copy of this context with a different current entry."""
        return replace(self, entry_id=entry_id)

    def evaluate_expr(self, expr: "LookupExpression", capture_errors: bool = False) -> LookupValue:
        """
        Evaluate an expression in this context.

        Args:
            expr: The expression to evaluate
            capture_errors: Return evaluation errors as an ErrorValue instead
                of raising them
        """
        try:
            return expr.evaluate(self)
        except LookupEvaluationError as err:
            if not capture_errors:
                raise
            return ErrorValue(type(err).__name__, str(err))

    def evaluate_concrete(self, expr: "LookupExpression", capture_errors: bool = False) -> ConcreteValue:
        """Evaluate an expression and resolve the result, running any lazy query."""
        try:
            return expr.evaluate(self).resolve()
        except LookupEvaluationError as err:
            if not capture_errors:
                raise
            return ErrorValue(type(err).__name__, str(err))
