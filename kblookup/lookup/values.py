"""
Value types for the lookup engine.

Every lookup expression evaluates to a LookupValue. Values are either:

- Concrete: fully computed, serializable with to_dict(), e.g. IntegerValue(5)
  or a PageValue of entries.
- Lazy: a deferred computation, typically a database query that has not run
  yet. LazyEntrySetValue can still be extended (related(), slice(), count())
  before resolve() finally executes it.

The serialized "type" tag of each concrete value comes from the ValueKind
enum, declared explicitly on each class.

Example:
    IntegerValue(5).to_dict()            -> {'type': 'Integer', 'value': '5'}
    EntryValue('_abc').as_literal()      -> 'E[_abc]'
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Callable, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar,
    TYPE_CHECKING
)

from .errors import LookupEvaluationError
from .fragment import EntryQuery, QueryStep

if TYPE_CHECKING:
    from .context import LookupContext


V = TypeVar('V', bound='LookupValue')

# Identifiers that can appear inside E[...], ET[...], RT[...] and RF[...]
LITERAL_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]+$')


class ValueKind(Enum):
    """The serialized "type" tag of each concrete value kind."""
    INTEGER = "Integer"
    NULL = "Null"
    STRING = "String"
    ERROR = "Error"
    ENTRY = "Entry"
    ANNOTATED_ENTRY = "AnnotatedEntry"
    ENTRY_TYPE = "EntryType"
    RELATIONSHIP_TYPE = "RelationshipType"
    RELATIONSHIP_FACT = "RelationshipFact"
    PAGE = "Page"


# =============================================================================
# Base Classes
# =============================================================================

class LookupValue(ABC):
    """Base class for all lookup values."""

    is_lazy: ClassVar[bool] = False
    # Countable values (pages, lazy entry sets) set this and implement get_count()
    has_count: ClassVar[bool] = False

    def cast_to(self, value_type: Type[V], context: "LookupContext") -> Optional[V]:
        """
        Convert this value to another value type if there is a defined conversion.

        Returns None (rather than raising) when there is no conversion, so that
        callers can try something else or raise a more specific error.
        """
        if isinstance(self, value_type):
            return self

        new_value = self._do_cast_to(value_type, context)
        if new_value is not None and not isinstance(new_value, value_type):
            raise LookupEvaluationError(
                f"Internal error, cast from {type(self).__name__} to {value_type.__name__} failed."
            )
        return new_value

    def _do_cast_to(self, value_type: Type["LookupValue"], context: "LookupContext") -> Optional["LookupValue"]:
        """Subclasses override this to implement type casting."""
        return None

    def as_literal(self) -> Optional[str]:
        """
        Return this value in lookup expression syntax, or None if it has no literal form.

        The returned string parses to an expression that yields an equal value.
        """
        return None

    @abstractmethod
    def resolve(self) -> "ConcreteValue":
        """Convert to a concrete value, running any deferred query."""
        pass


class ConcreteValue(LookupValue):
    """A value representing computed data, like the number 5 or a page of entries."""

    kind: ClassVar[ValueKind]

    def resolve(self) -> "ConcreteValue":
        return self

    @abstractmethod
    def _serialize_fields(self) -> Dict[str, Any]:
        """Fields other than 'type' to include when serialized."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible tagged dictionary."""
        return {'type': self.kind.value, **self._serialize_fields()}


class LazyValue(LookupValue):
    """A value representing a computation that has not been run yet."""

    is_lazy: ClassVar[bool] = True


# =============================================================================
# Scalar Values
# =============================================================================

@dataclass(frozen=True)
class IntegerValue(ConcreteValue):
    """An arbitrary-precision integer."""
    value: int

    kind: ClassVar[ValueKind] = ValueKind.INTEGER

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"IntegerValue requires an int, got {type(self.value).__name__}")

    def as_literal(self) -> str:
        return str(self.value)

    def _serialize_fields(self) -> Dict[str, Any]:
        # JSON consumers can't be trusted with big integers
        return {'value': str(self.value)}


@dataclass(frozen=True)
class NullValue(ConcreteValue):
    """The absence of a value."""

    kind: ClassVar[ValueKind] = ValueKind.NULL

    def as_literal(self) -> str:
        return "null"

    def _serialize_fields(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class StringValue(ConcreteValue):
    """A piece of text, written in expressions as "double quoted"."""
    value: str

    kind: ClassVar[ValueKind] = ValueKind.STRING

    def as_literal(self) -> str:
        escaped = self.value.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'

    def _serialize_fields(self) -> Dict[str, Any]:
        return {'value': self.value}


@dataclass(frozen=True)
class ErrorValue(ConcreteValue):
    """
    An evaluation error captured as a value.

    Only produced when a caller explicitly asks for error-capturing evaluation.
    """
    error_class: str
    message: str

    kind: ClassVar[ValueKind] = ValueKind.ERROR

    def _serialize_fields(self) -> Dict[str, Any]:
        return {'errorClass': self.error_class, 'message': self.message}


# =============================================================================
# Identity Values
# =============================================================================

@dataclass(frozen=True)
class _IdentifiedValue(ConcreteValue):
    """A reference to a database object by its identifier."""
    id: str

    literal_prefix: ClassVar[str]

    def as_literal(self) -> Optional[str]:
        if not LITERAL_ID_PATTERN.match(self.id):
            return None
        return f"{self.literal_prefix}[{self.id}]"

    def _serialize_fields(self) -> Dict[str, Any]:
        return {'id': self.id}


@dataclass(frozen=True)
class EntryValue(_IdentifiedValue):
    """A single entry."""

    kind: ClassVar[ValueKind] = ValueKind.ENTRY
    literal_prefix: ClassVar[str] = "E"

    def _do_cast_to(self, value_type, context):
        if issubclass(LazyEntrySetValue, value_type):
            return LazyEntrySetValue(context, EntryQuery.starting_at(self.id))
        return None


@dataclass(frozen=True)
class EntryTypeValue(_IdentifiedValue):
    """An entry type from the site schema."""

    kind: ClassVar[ValueKind] = ValueKind.ENTRY_TYPE
    literal_prefix: ClassVar[str] = "ET"


@dataclass(frozen=True)
class RelationshipTypeValue(_IdentifiedValue):
    """A relationship type from the site schema."""

    kind: ClassVar[ValueKind] = ValueKind.RELATIONSHIP_TYPE
    literal_prefix: ClassVar[str] = "RT"


@dataclass(frozen=True)
class RelationshipFactValue(_IdentifiedValue):
    """A single relationship between two entries."""

    kind: ClassVar[ValueKind] = ValueKind.RELATIONSHIP_FACT
    literal_prefix: ClassVar[str] = "RF"


@dataclass(frozen=True)
class AnnotatedEntryValue(EntryValue):
    """
    An entry plus extra data computed for it by the query that found it.

    For example ancestors() annotates each entry with its 'distance'. The same
    entry can carry different annotations depending on how it was looked up.
    """
    annotations: Dict[str, ConcreteValue] = field(default_factory=dict)

    kind: ClassVar[ValueKind] = ValueKind.ANNOTATED_ENTRY

    def __post_init__(self):
        if not self.annotations:
            raise ValueError("AnnotatedEntryValue requires at least one annotation")

    def as_literal(self) -> Optional[str]:
        return None

    def _serialize_fields(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'annotations': {name: value.to_dict() for name, value in self.annotations.items()},
        }


# =============================================================================
# Collections
# =============================================================================

@dataclass(frozen=True)
class PageValue(ConcreteValue):
    """
    A page of values taken from a larger result set.

    total_count is the exact size of the full result set.
    """
    values: List[ConcreteValue]
    started_at: int
    page_size: int
    total_count: int

    kind: ClassVar[ValueKind] = ValueKind.PAGE
    has_count: ClassVar[bool] = True

    def __post_init__(self):
        if self.started_at < 0 or self.page_size < 0:
            raise ValueError("Page offset and size must not be negative")
        # A page requested past the end is empty, not invalid
        if self.values and self.started_at + len(self.values) > self.total_count:
            raise ValueError(
                f"Page starting at {self.started_at} with {len(self.values)} values "
                f"exceeds total count {self.total_count}"
            )

    def get_count(self) -> int:
        return self.total_count

    def _serialize_fields(self) -> Dict[str, Any]:
        return {
            'values': [v.to_dict() for v in self.values],
            'startedAt': self.started_at,
            'pageSize': self.page_size,
            'totalCount': self.total_count,
        }


# =============================================================================
# Lazy Entry Sets
# =============================================================================

# Converts one raw annotation value loaded from the database into a concrete
# value, e.g. int -> IntegerValue. Raises LookupEvaluationError on bad data.
AnnotationConverter = Callable[[Any], ConcreteValue]


class LazyEntrySetValue(LazyValue):
    """
    A query for a set of entries that has not been executed yet.

    Each row of the query binds an entry plus optional raw annotation data;
    the annotation converters turn that raw data into values. Expressions can
    extend the query (extend) or change its pagination (with_page) before it
    is executed by resolve() or get_count().
    """

    has_count: ClassVar[bool] = True

    def __init__(
        self,
        context: "LookupContext",
        query: EntryQuery,
        annotations: Optional[Mapping[str, AnnotationConverter]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ):
        if limit is None:
            limit = context.default_page_size
        if skip < 0 or limit < 0:
            raise LookupEvaluationError("Internal error - unsafe skip/limit value.")
        self.context = context
        self.query = query
        self.annotations: Dict[str, AnnotationConverter] = dict(annotations or {})
        self.skip = skip
        self.limit = limit

    def extend(
        self,
        step: QueryStep,
        annotations: Optional[Mapping[str, AnnotationConverter]] = None,
    ) -> "LazyEntrySetValue":
        """
        Continue the query from its current entries with another step.

        Existing annotations are dropped and pagination is reset; the new
        step's annotations replace them.
        """
        return LazyEntrySetValue(self.context, self.query.then(step), annotations=annotations)

    def with_page(self, skip: int, limit: int) -> "LazyEntrySetValue":
        """Return the same query with different pagination."""
        return LazyEntrySetValue(
            self.context, self.query, annotations=self.annotations, skip=skip, limit=limit
        )

    def get_count(self) -> int:
        """Total number of matching entries, ignoring skip and limit."""
        return self.context.tx.count_entries(self.query, self.context.site_id)

    def fetch(self) -> List[EntryValue]:
        """Run the query for the current page and convert each row."""
        rows = self.context.tx.fetch_entries(
            self.query, self.context.site_id, skip=self.skip, limit=self.limit
        )
        return [self._row_to_value(row) for row in rows]

    def _row_to_value(self, row: Dict[str, Any]) -> EntryValue:
        if not self.annotations:
            return EntryValue(row['entry'])
        raw = row.get('annotations') or {}
        converted = {name: convert(raw.get(name)) for name, convert in self.annotations.items()}
        return AnnotatedEntryValue(row['entry'], converted)

    def resolve(self) -> PageValue:
        values = self.fetch()
        if self.skip == 0 and len(values) < self.limit:
            # Everything fit on the first page, no need for a count query
            total_count = len(values)
        else:
            total_count = self.get_count()
        return PageValue(
            values=values,
            started_at=self.skip,
            page_size=self.limit,
            total_count=total_count,
        )

    def _do_cast_to(self, value_type, context):
        if issubclass(PageValue, value_type):
            return self.resolve()
        return None

    def __repr__(self):
        parts = [f"steps={len(self.query.steps)}", f"skip={self.skip}", f"limit={self.limit}"]
        if self.annotations:
            parts.append(f"annotations={sorted(self.annotations)}")
        return f"LazyEntrySetValue({', '.join(parts)})"
