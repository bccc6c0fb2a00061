"""
Entry points for evaluating lookup expressions.

evaluate_lookup() works inside an existing context; run_lookup() opens its
own graph transaction on a Database and returns both the normalized
expression text and the serialized result:

    response = run_lookup(db, "plants", "this.ancestors()", entry_id="pine")
    response.to_dict()
    # {'expressionNormalized': 'ancestors(this)',
    #  'resultValue': {'type': 'Page', 'values': [...], ...}}

Parse errors (LookupParseError) and evaluation errors (LookupEvaluationError)
are raised separately so callers can report them differently.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING

from kblookup.config import get_config
from .context import LookupContext
from .parser import parse_lookup

if TYPE_CHECKING:
    from kblookup.db import Database

logger = logging.getLogger(__name__)


def evaluate_lookup(expression_text: str, context: LookupContext, capture_errors: bool = False) -> Dict[str, Any]:
    """
    Parse, evaluate and resolve an expression, returning the serialized value.

    Args:
        expression_text: Lookup expression source
        context: Evaluation context (its transaction must still be open)
        capture_errors: Return evaluation errors as an Error value

    Raises:
        LookupParseError: if the text doesn't parse
        LookupEvaluationError: if evaluation fails and capture_errors is False
    """
    expr = parse_lookup(expression_text)
    return context.evaluate_concrete(expr, capture_errors=capture_errors).to_dict()


@dataclass
class LookupResponse:
    """Result of run_lookup()."""
    expression_normalized: str
    result_value: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'expressionNormalized': self.expression_normalized,
            'resultValue': self.result_value,
        }


def run_lookup(
    db: "Database",
    site_key: str,
    expression_text: str,
    entry_id: Optional[str] = None,
    page_size: Optional[int] = None,
    capture_errors: bool = False,
) -> LookupResponse:
    """
    Evaluate an expression against one site of a database.

    Args:
        db: Database to read from
        site_key: Key of the site to query
        expression_text: Lookup expression source
        entry_id: Id or key of the entry "this" refers to
        page_size: Default page size (uses config default if not provided)
        capture_errors: Return evaluation errors as an Error value

    Raises:
        ValueError: if the site or entry doesn't exist
        LookupParseError, LookupEvaluationError: as for evaluate_lookup()
    """
    expr = parse_lookup(expression_text)
    if page_size is None:
        page_size = get_config().default_page_size

    with db.read() as tx:
        site_id = tx.site_id_for_key(site_key)
        if site_id is None:
            raise ValueError(f"Site '{site_key}' not found")

        current_entry = None
        if entry_id is not None:
            current_entry = tx.entry_id_for(site_id, entry_id)
            if current_entry is None:
                raise ValueError(f"Entry '{entry_id}' not found in site '{site_key}'")

        context = LookupContext(tx, site_id, entry_id=current_entry, default_page_size=page_size)
        logger.info(f"Evaluating {expr.to_text()} on site {site_key} (entry={current_entry})")
        value = context.evaluate_concrete(expr, capture_errors=capture_errors)
        return LookupResponse(expr.to_text(), value.to_dict())
