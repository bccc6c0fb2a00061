"""
Expression tree for the lookup language.

Every node is an immutable dataclass, so two trees compare equal when they
have the same node types and equal operands. Each node implements:

- evaluate(context): compute a LookupValue
- to_text(): canonical source text, which parses back to an equal tree

Example:
    expr = RelatedEntries(AndAncestors(This()), via=LiteralExpression(RelationshipTypeValue('_HAS_A')))
    expr.to_text()  -> 'related(andAncestors(this), via=RT[_HAS_A])'
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Type, TypeVar, Union

from .context import LookupContext
from .errors import LookupEvaluationError
from .fragment import (
    DEFAULT_MAX_DEPTH, Direction, EntryQuery, HierarchyWalk, HopDirection, RelationshipHop
)
from .values import (
    ConcreteValue, EntryValue, IntegerValue, LazyEntrySetValue, LookupValue,
    NullValue, RelationshipTypeValue, StringValue
)

V = TypeVar('V', bound=LookupValue)


# =============================================================================
# Annotation Converters
# =============================================================================

def _distance_to_value(raw: Any) -> IntegerValue:
    """Read an annotated 'distance' from a database row."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        return IntegerValue(raw)
    raise LookupEvaluationError("Unexpected data type for 'distance' while evaluating lookup expression.")


def _weight_to_value(raw: Any) -> Union[IntegerValue, NullValue]:
    """Read an annotated 'weight' from a database row; a missing weight is Null."""
    if raw is None:
        return NullValue()
    if isinstance(raw, int) and not isinstance(raw, bool):
        return IntegerValue(raw)
    raise LookupEvaluationError("Unexpected data type for 'weight' while evaluating lookup expression.")


def _note_to_value(raw: Any) -> Union[StringValue, NullValue]:
    """Read an annotated 'note' from a database row; a missing note is Null."""
    if raw is None:
        return NullValue()
    if isinstance(raw, str):
        return StringValue(raw)
    raise LookupEvaluationError("Unexpected data type for 'note' while evaluating lookup expression.")


# =============================================================================
# Base Class
# =============================================================================

class LookupExpression(ABC):
    """Base class for all lookup expressions."""

    @abstractmethod
    def evaluate(self, context: LookupContext) -> LookupValue:
        """Evaluate this expression in the given context."""
        pass

    def evaluate_as(self, context: LookupContext, value_type: Type[V]) -> V:
        """
        Evaluate and cast the result to value_type.

        Raises:
            LookupEvaluationError: if the result can't be cast
        """
        value = self.evaluate(context)
        cast_value = value.cast_to(value_type, context)
        if cast_value is None:
            raise LookupEvaluationError(f'The expression "{self.to_text()}" is not of the right type.')
        return cast_value

    @abstractmethod
    def to_text(self) -> str:
        """Format this expression in canonical lookup syntax, recursively."""
        pass

    def __str__(self):
        return self.to_text()


# =============================================================================
# Leaf Expressions
# =============================================================================

@dataclass(frozen=True)
class This(LookupExpression):
    """this: the entry the lookup is evaluated for."""

    def evaluate(self, context):
        if context.entry_id is None:
            raise LookupEvaluationError(
                'There is no current entry, so "this" cannot be used here.'
            )
        return EntryValue(context.entry_id)

    def to_text(self):
        return "this"


@dataclass(frozen=True)
class LiteralExpression(LookupExpression):
    """A constant value written directly in the expression, e.g. 5 or RT[_xyz]."""
    value: ConcreteValue

    def __post_init__(self):
        if self.value.as_literal() is None:
            raise ValueError(f"{type(self.value).__name__} cannot be written as a literal")

    def evaluate(self, context):
        return self.value

    def to_text(self):
        return self.value.as_literal()


# =============================================================================
# Hierarchy
# =============================================================================

@dataclass(frozen=True)
class _HierarchyExpression(LookupExpression):
    """Walk the IS_A hierarchy from a single entry."""
    entry_expr: LookupExpression

    function_name: ClassVar[str]
    direction: ClassVar[Direction]
    include_self: ClassVar[bool]

    def evaluate(self, context):
        start = self.entry_expr.evaluate_as(context, EntryValue)
        query = EntryQuery.starting_at(start.id).then(
            HierarchyWalk(self.direction, self.include_self, DEFAULT_MAX_DEPTH)
        )
        return LazyEntrySetValue(context, query, annotations={'distance': _distance_to_value})

    def to_text(self):
        return f"{self.function_name}({self.entry_expr.to_text()})"


@dataclass(frozen=True)
class Ancestors(_HierarchyExpression):
    """ancestors(entry): everything the entry IS_A, nearest first."""
    function_name: ClassVar[str] = "ancestors"
    direction: ClassVar[Direction] = Direction.UP
    include_self: ClassVar[bool] = False


@dataclass(frozen=True)
class AndAncestors(_HierarchyExpression):
    """andAncestors(entry): the entry itself (distance 0) followed by its ancestors."""
    function_name: ClassVar[str] = "andAncestors"
    direction: ClassVar[Direction] = Direction.UP
    include_self: ClassVar[bool] = True


@dataclass(frozen=True)
class Descendants(_HierarchyExpression):
    """descendants(entry): everything that IS_A the entry, nearest first."""
    function_name: ClassVar[str] = "descendants"
    direction: ClassVar[Direction] = Direction.DOWN
    include_self: ClassVar[bool] = False


@dataclass(frozen=True)
class AndDescendants(_HierarchyExpression):
    """andDescendants(entry): the entry itself (distance 0) followed by its descendants."""
    function_name: ClassVar[str] = "andDescendants"
    direction: ClassVar[Direction] = Direction.DOWN
    include_self: ClassVar[bool] = True


# =============================================================================
# Relationships
# =============================================================================

@dataclass(frozen=True)
class RelatedEntries(LookupExpression):
    """
    related(entries, via=RT[...], direction="from"): follow relationships of one type.

    Given an entry or set of entries (the "from" entries), follow the direct
    relationships of the given type and return the entries they point to.
    e.g. if Lion IS A Mammal, related(lion, via=RT[IS_A]) returns [Mammal].

    direction="to" follows relationships pointing at the given entries
    instead, and direction="both" follows them either way.
    """
    from_expr: LookupExpression
    via: LookupExpression
    direction: Optional[LookupExpression] = None

    def _direction(self, context: LookupContext) -> HopDirection:
        if self.direction is None:
            return HopDirection.FROM
        value = self.direction.evaluate_as(context, StringValue).value
        try:
            return HopDirection(value)
        except ValueError:
            raise LookupEvaluationError(f'Invalid direction value passed to related(): "{value}"') from None

    def evaluate(self, context):
        from_entries = self.from_expr.evaluate_as(context, LazyEntrySetValue)
        rel_type = self.via.evaluate_as(context, RelationshipTypeValue)
        return from_entries.extend(
            RelationshipHop(rel_type.id, self._direction(context)),
            annotations={'weight': _weight_to_value, 'note': _note_to_value},
        )

    def to_text(self):
        direction = f", direction={self.direction.to_text()}" if self.direction is not None else ""
        return f"related({self.from_expr.to_text()}, via={self.via.to_text()}{direction})"


# =============================================================================
# Counting and Pagination
# =============================================================================

@dataclass(frozen=True)
class Count(LookupExpression):
    """count(x): the number of values in x, without loading them where possible."""
    expr: LookupExpression

    def evaluate(self, context):
        value = self.expr.evaluate(context)
        if not value.has_count:
            raise LookupEvaluationError(f'The expression "{self.expr.to_text()}" is not countable.')
        return IntegerValue(value.get_count())

    def to_text(self):
        return f"count({self.expr.to_text()})"


@dataclass(frozen=True)
class Slice(LookupExpression):
    """
    slice(entries, start=0, size=10): choose which page of a set of entries to load.

    start defaults to 0 and size to the context's default page size. The
    slice replaces any earlier pagination of the same set.
    """
    expr: LookupExpression
    start: Optional[LookupExpression] = None
    size: Optional[LookupExpression] = None

    def _non_negative(self, context: LookupContext, arg: Optional[LookupExpression], name: str, default: int) -> int:
        if arg is None:
            return default
        value = arg.evaluate_as(context, IntegerValue).value
        if value < 0:
            raise LookupEvaluationError(f"slice() {name} must not be negative, got {value}.")
        return value

    def evaluate(self, context):
        entries = self.expr.evaluate_as(context, LazyEntrySetValue)
        start = self._non_negative(context, self.start, "start", 0)
        size = self._non_negative(context, self.size, "size", context.default_page_size)
        return entries.with_page(skip=start, limit=size)

    def to_text(self):
        parts = [self.expr.to_text()]
        if self.start is not None:
            parts.append(f"start={self.start.to_text()}")
        if self.size is not None:
            parts.append(f"size={self.size.to_text()}")
        return f"slice({', '.join(parts)})"
