"""
Lookup expression engine for kblookup.

Parses lookup expressions like ``related(this.andAncestors(), via=RT[_HAS_A])``,
evaluates them against the content graph and serializes the results.

Example:
    from kblookup.lookup import run_lookup

    response = run_lookup(db, "plants", "count(this.ancestors())", entry_id="pine")
"""

from .errors import LookupEngineError, LookupEvaluationError, LookupParseError
from .values import (
    ValueKind, LookupValue, ConcreteValue, LazyValue,
    IntegerValue, NullValue, StringValue, ErrorValue,
    EntryValue, EntryTypeValue, RelationshipTypeValue, RelationshipFactValue,
    AnnotatedEntryValue, PageValue, LazyEntrySetValue,
)
from .context import LookupContext
from .expressions import (
    LookupExpression, This, LiteralExpression,
    Ancestors, AndAncestors, Descendants, AndDescendants,
    RelatedEntries, Count, Slice,
)
from .parser import parse_lookup, LookupParser
from .backend import GraphTransaction, TransactionClosedError
from .api import evaluate_lookup, run_lookup, LookupResponse

__all__ = [
    # Errors
    'LookupEngineError', 'LookupEvaluationError', 'LookupParseError',
    # Values
    'ValueKind', 'LookupValue', 'ConcreteValue', 'LazyValue',
    'IntegerValue', 'NullValue', 'StringValue', 'ErrorValue',
    'EntryValue', 'EntryTypeValue', 'RelationshipTypeValue', 'RelationshipFactValue',
    'AnnotatedEntryValue', 'PageValue', 'LazyEntrySetValue',
    # Evaluation
    'LookupContext', 'GraphTransaction', 'TransactionClosedError',
    # Expressions
    'LookupExpression', 'This', 'LiteralExpression',
    'Ancestors', 'AndAncestors', 'Descendants', 'AndDescendants',
    'RelatedEntries', 'Count', 'Slice',
    # Parsing and API
    'parse_lookup', 'LookupParser',
    'evaluate_lookup', 'run_lookup', 'LookupResponse',
]
