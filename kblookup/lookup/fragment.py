"""
Query fragments for lazy entry sets.

An EntryQuery is an immutable chain of steps. The first step binds the
starting entries; each later step continues from the entries bound by the
step before it:

    EntryQuery.starting_at('_pine')
        .then(HierarchyWalk(Direction.UP, include_self=False))
        .then(RelationshipHop('_HAS_A'))

Compiling a query produces a SQLAlchemy select with one row per result and
the columns:

    entry_id     - the bound entry
    entry_name   - used for tie-break ordering
    <annotation> - one column per annotation the last step declares

Only the last step's annotations survive; earlier steps are compiled into a
subquery and only their entry_id column is read. The same compiled select is
used for both the paginated row query and the count-only query, so both
always apply identical filtering.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, List, Optional, Tuple

from sqlalchemy import (
    ColumnElement, FromClause, Integer, Select, case, func, literal, select,
    union_all
)

from kblookup.models import (
    Entry, RelationshipCategory, RelationshipFact, RelationshipType
)

DEFAULT_MAX_DEPTH = 50


class Direction(str, Enum):
    """Which way to walk the is-a hierarchy."""
    UP = "up"        # towards ancestors
    DOWN = "down"    # towards descendants


# =============================================================================
# Sort Keys
# =============================================================================

@dataclass(frozen=True)
class SortKey:
    """
    One ORDER BY term, referring to a column of the compiled select.

    Attributes:
        column: Column name
        descending: Sort direction
        nulls_last: Put NULLs after every non-NULL value regardless of direction
    """
    column: str
    descending: bool = False
    nulls_last: bool = False

    def to_clauses(self, source: FromClause) -> List[ColumnElement]:
        col = source.c[self.column]
        clauses: List[ColumnElement] = []
        if self.nulls_last:
            # Portable replacement for NULLS LAST
            clauses.append(case((col.is_(None), 1), else_=0))
        clauses.append(col.desc() if self.descending else col.asc())
        return clauses

    def __repr__(self):
        direction = "desc" if self.descending else "asc"
        nulls = " nulls last" if self.nulls_last else ""
        return f"SortKey({self.column} {direction}{nulls})"


# =============================================================================
# Steps
# =============================================================================

class QueryStep(ABC):
    """One step of an entry query."""

    annotation_names: ClassVar[Tuple[str, ...]] = ()
    sort_keys: ClassVar[Tuple[SortKey, ...]] = ()

    @abstractmethod
    def compile(self, source: Optional[FromClause], site_id: str) -> Select:
        """
        Build the select for this step.

        Args:
            source: The previous step's results (has an entry_id column), or
                None if this is the first step
            site_id: Only entries of this site may be returned
        """
        pass


@dataclass(frozen=True)
class StartAt(QueryStep):
    """Bind a single entry by id."""
    entry_id: str

    sort_keys: ClassVar[Tuple[SortKey, ...]] = (SortKey("entry_name"), SortKey("entry_id"))

    def compile(self, source, site_id):
        if source is not None:
            raise ValueError("StartAt must be the first step of a query")
        return select(
            Entry.id.label("entry_id"),
            Entry.name.label("entry_name"),
        ).where(Entry.id == self.entry_id, Entry.site_id == site_id)


@dataclass(frozen=True)
class HierarchyWalk(QueryStep):
    """
    Follow IS_A relationships from each bound entry.

    Every reachable entry within max_depth hops is returned once, annotated
    with the shortest distance found. Unless include_self is set, the
    starting entries themselves are never returned, even when the hierarchy
    has a cycle leading back to them.
    """
    direction: Direction = Direction.UP
    include_self: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH

    annotation_names: ClassVar[Tuple[str, ...]] = ("distance",)
    sort_keys: ClassVar[Tuple[SortKey, ...]] = (
        SortKey("distance"), SortKey("entry_name"), SortKey("entry_id"),
    )

    def compile(self, source, site_id):
        if source is None:
            raise ValueError("HierarchyWalk needs starting entries")

        hops = (
            select(RelationshipFact.from_entry_id, RelationshipFact.to_entry_id)
            .join(RelationshipType, RelationshipType.id == RelationshipFact.rel_type_id)
            .where(
                RelationshipType.category == RelationshipCategory.IS_A,
                RelationshipType.site_id == site_id,
            )
            .subquery()
        )
        if self.direction == Direction.UP:
            near, far = hops.c.from_entry_id, hops.c.to_entry_id
        else:
            near, far = hops.c.to_entry_id, hops.c.from_entry_id

        walk = select(
            source.c.entry_id.label("start_id"),
            source.c.entry_id.label("entry_id"),
            literal(0, Integer).label("distance"),
        ).cte(recursive=True)
        previous = walk.alias()
        walk = walk.union(
            select(
                previous.c.start_id,
                far.label("entry_id"),
                (previous.c.distance + 1).label("distance"),
            )
            .select_from(previous)
            .join(hops, near == previous.c.entry_id)
            .where(previous.c.distance < self.max_depth)
        )

        nearest = select(walk.c.entry_id, func.min(walk.c.distance).label("distance"))
        if not self.include_self:
            nearest = nearest.where(walk.c.entry_id != walk.c.start_id)
        nearest = nearest.group_by(walk.c.entry_id).subquery()

        return (
            select(
                nearest.c.entry_id,
                Entry.name.label("entry_name"),
                nearest.c.distance,
            )
            .select_from(nearest)
            .join(Entry, Entry.id == nearest.c.entry_id)
            .where(Entry.site_id == site_id)
        )


class HopDirection(str, Enum):
    """Which end of a relationship fact related() starts from."""
    FROM = "from"    # follow facts from the bound entry to the other end
    TO = "to"        # follow facts pointing at the bound entry back to where they start
    BOTH = "both"


@dataclass(frozen=True)
class RelationshipHop(QueryStep):
    """
    Follow relationship facts of one type, one hop, from each bound entry.

    Rows are annotated with the fact's weight and note; heavier facts sort
    first and facts without a weight sort after all weighted ones. With
    HopDirection.BOTH, each fact touching a bound entry yields the entry at
    its other end.
    """
    rel_type_id: str
    direction: HopDirection = HopDirection.FROM

    annotation_names: ClassVar[Tuple[str, ...]] = ("weight", "note")
    sort_keys: ClassVar[Tuple[SortKey, ...]] = (
        SortKey("weight", descending=True, nulls_last=True),
        SortKey("entry_name"),
        SortKey("entry_id"),
        SortKey("fact_id"),
    )

    def _hop(self, source: FromClause, site_id: str, near: ColumnElement, far: ColumnElement) -> Select:
        return (
            select(
                far.label("entry_id"),
                Entry.name.label("entry_name"),
                RelationshipFact.weight.label("weight"),
                RelationshipFact.note.label("note"),
                RelationshipFact.id.label("fact_id"),
            )
            .select_from(source)
            .join(RelationshipFact, near == source.c.entry_id)
            .join(RelationshipType, RelationshipType.id == RelationshipFact.rel_type_id)
            .join(Entry, Entry.id == far)
            .where(
                RelationshipFact.rel_type_id == self.rel_type_id,
                RelationshipType.site_id == site_id,
                Entry.site_id == site_id,
            )
        )

    def compile(self, source, site_id):
        if source is None:
            raise ValueError("RelationshipHop needs starting entries")
        forward = (RelationshipFact.from_entry_id, RelationshipFact.to_entry_id)
        backward = (RelationshipFact.to_entry_id, RelationshipFact.from_entry_id)
        if self.direction == HopDirection.FROM:
            return self._hop(source, site_id, *forward)
        if self.direction == HopDirection.TO:
            return self._hop(source, site_id, *backward)

        both = union_all(
            self._hop(source, site_id, *forward),
            self._hop(source, site_id, *backward),
        ).subquery()
        return select(
            both.c.entry_id, both.c.entry_name, both.c.weight, both.c.note, both.c.fact_id,
        )


# =============================================================================
# Entry Query
# =============================================================================

@dataclass(frozen=True)
class EntryQuery:
    """An immutable chain of query steps, starting with StartAt."""
    steps: Tuple[QueryStep, ...]

    def __post_init__(self):
        if not self.steps or not isinstance(self.steps[0], StartAt):
            raise ValueError("An entry query must begin with a StartAt step")
        if any(isinstance(step, StartAt) for step in self.steps[1:]):
            raise ValueError("StartAt can only be the first step of an entry query")

    @classmethod
    def starting_at(cls, entry_id: str) -> "EntryQuery":
        return cls(steps=(StartAt(entry_id),))

    def then(self, step: QueryStep) -> "EntryQuery":
        """Return a new query with one more step."""
        return EntryQuery(steps=self.steps + (step,))

    @property
    def annotation_names(self) -> Tuple[str, ...]:
        return self.steps[-1].annotation_names

    @property
    def sort_keys(self) -> Tuple[SortKey, ...]:
        return self.steps[-1].sort_keys


def compile_entry_query(query: EntryQuery, site_id: str) -> Select:
    """Compile every step, feeding each into the next as a subquery."""
    compiled: Optional[Select] = None
    for step in query.steps:
        source = compiled.subquery() if compiled is not None else None
        compiled = step.compile(source, site_id)
    return compiled


def rows_statement(query: EntryQuery, site_id: str, skip: int, limit: int) -> Select:
    """The ordered, paginated statement returning entry_id and annotation columns."""
    rows = compile_entry_query(query, site_id).subquery()
    columns = [rows.c.entry_id] + [rows.c[name] for name in query.annotation_names]
    order_by = [clause for key in query.sort_keys for clause in key.to_clauses(rows)]
    return select(*columns).order_by(*order_by).offset(skip).limit(limit)


def count_statement(query: EntryQuery, site_id: str) -> Select:
    """The count-only statement: same rows, no ordering or pagination."""
    rows = compile_entry_query(query, site_id).subquery()
    return select(func.count()).select_from(rows)
