"""
SQLAlchemy models for the kblookup content graph.

A site holds entries, each of some entry type. Entries are connected by
relationship facts, each an instance of a site-defined relationship type.
Relationship types with category IS_A form the hierarchy that the
ancestors()/descendants() lookup functions walk.
"""
import enum
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy import (
    Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint,
    Enum as SAEnum
)
from sqlalchemy.orm import (
    DeclarativeBase, relationship, Mapped, mapped_column
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class RelationshipCategory(str, enum.Enum):
    """How a relationship type behaves in the graph."""
    IS_A = "IS_A"
    HAS_A = "HAS_A"
    RELATES_TO = "RELATES_TO"
    DEPENDS_ON = "DEPENDS_ON"


class Site(Base):
    """
    A knowledge base. Every other row belongs to exactly one site.

    Attributes:
        id: Primary key (string identifier)
        key: Short unique key used on the command line, e.g. "plants"
        name: Display name
    """
    __tablename__ = 'sites'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    entries: Mapped[List["Entry"]] = relationship(
        "Entry", back_populates="site", cascade="all, delete-orphan", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Site(id={self.id}, key='{self.key}')>"


class EntryType(Base):
    """A schema-level type of entry, e.g. "Genus" or "Species"."""
    __tablename__ = 'entry_types'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    site_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('sites.id', ondelete='CASCADE'), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)

    def __repr__(self):
        return f"<EntryType(id={self.id}, name='{self.name}')>"


class Entry(Base):
    """
    One knowledge-base item.

    The name is used as the tie-breaker whenever lookup results are ordered.
    """
    __tablename__ = 'entries'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    site_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('sites.id', ondelete='CASCADE'), nullable=False
    )
    entry_type_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('entry_types.id', ondelete='CASCADE'), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    key: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default='')

    site: Mapped["Site"] = relationship("Site", back_populates="entries")
    entry_type: Mapped["EntryType"] = relationship("EntryType", lazy="joined")

    __table_args__ = (
        Index('ix_entries_site_name', 'site_id', 'name'),
        UniqueConstraint('site_id', 'key', name='uq_entries_site_key'),
    )

    def __repr__(self):
        return f"<Entry(id={self.id}, name='{self.name[:50]}')>"


class RelationshipType(Base):
    """A site-defined kind of relationship, e.g. "is a" or "has part"."""
    __tablename__ = 'relationship_types'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    site_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('sites.id', ondelete='CASCADE'), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    category: Mapped[RelationshipCategory] = mapped_column(
        SAEnum(RelationshipCategory, native_enum=False, length=32),
        nullable=False,
        default=RelationshipCategory.RELATES_TO,
        index=True
    )

    def __repr__(self):
        return f"<RelationshipType(id={self.id}, category={self.category.value})>"


class RelationshipFact(Base):
    """
    A directed edge: from_entry --[rel_type]--> to_entry.

    weight is optional; related() lists heavier relationships first. note is
    an optional short remark about this particular relationship.
    """
    __tablename__ = 'relationship_facts'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rel_type_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('relationship_types.id', ondelete='CASCADE'), nullable=False
    )
    from_entry_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('entries.id', ondelete='CASCADE'), nullable=False
    )
    to_entry_id: Mapped[str] = mapped_column(
        String(64), ForeignKey('entries.id', ondelete='CASCADE'), nullable=False
    )
    weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    rel_type: Mapped["RelationshipType"] = relationship("RelationshipType", lazy="joined")

    __table_args__ = (
        Index('ix_relationship_facts_from', 'from_entry_id', 'rel_type_id'),
        Index('ix_relationship_facts_to', 'to_entry_id', 'rel_type_id'),
    )

    def __repr__(self):
        return (
            f"<RelationshipFact(id={self.id}, {self.from_entry_id} "
            f"-[{self.rel_type_id}]-> {self.to_entry_id})>"
        )
