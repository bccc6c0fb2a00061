"""
Import sites into a kblookup database.

A site is described by one YAML (or JSON) document:

    site: {key: plants, name: PlantDB}
    entryTypes:
      - {id: _ET_GENUS, name: Genus}
    relationshipTypes:
      - {id: _IS_A, name: is a, category: IS_A}
    entries:
      - {id: _PINE, name: Pine, type: _ET_GENUS, key: pine}
    relationships:
      - {from: _PINE, type: _IS_A, to: _PINUS, weight: 3, note: "the genus"}

Ids are optional everywhere; missing ids are generated. Given ids may only
use letters, digits, '_' and '-', so that they can be written as E[...]
literals. References may use an id, or the name of an entry/relationship
type, or the key of an entry, including objects imported earlier. Importing
the same ids again updates the existing rows in place.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from kblookup.db import Database
from kblookup.lookup.values import LITERAL_ID_PATTERN
from kblookup.models import (
    Entry, EntryType, RelationshipCategory, RelationshipFact, RelationshipType, Site
)
from kblookup.utils import new_id

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Counts of rows created or updated by an import."""
    site_key: str
    site_id: str
    entry_types: int = 0
    relationship_types: int = 0
    entries: int = 0
    relationships: int = 0

    def __str__(self):
        return (
            f"{self.site_key}: {self.entries} entries, {self.entry_types} entry types, "
            f"{self.relationship_types} relationship types, {self.relationships} relationships"
        )


def import_file(db: Database, path: Path, format: Optional[str] = None) -> ImportSummary:
    """
    Import a site from a file.

    Args:
        db: Database instance
        path: File path to import
        format: "yaml" or "json" (auto-detected from the extension if not specified)
    """
    path = Path(path)
    if format is None:
        format = "json" if path.suffix.lower() == ".json" else "yaml"

    with open(path, "r", encoding="utf-8") as f:
        if format == "json":
            data = json.load(f)
        elif format == "yaml":
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unknown format: {format}")

    return import_site_data(db, data)


def import_site_yaml(db: Database, source: Union[str, Path]) -> ImportSummary:
    """
    Import a site from YAML.

    Args:
        source: A Path to read, or the YAML text itself
    """
    if isinstance(source, Path):
        return import_file(db, source, format="yaml")
    return import_site_data(db, yaml.safe_load(source))


def import_site_data(db: Database, data: Dict[str, Any]) -> ImportSummary:
    """
    Import a site from an already-parsed document.

    Everything is written in one transaction: if any item is invalid, nothing
    is imported.

    Raises:
        ValueError: if the document is malformed or refers to something unknown
    """
    if not isinstance(data, dict) or not isinstance(data.get("site"), dict):
        raise ValueError("Import document must have a 'site' mapping")

    site_data = data["site"]
    site_key = site_data.get("key")
    if not site_key:
        raise ValueError("Site must have a 'key'")

    with db.session() as session:
        site = session.scalar(select(Site).where(Site.key == site_key))
        if site is None:
            site = Site(id=site_data.get("id") or new_id(), key=site_key, name=site_data.get("name") or site_key)
            session.add(site)
            session.flush()
            logger.info(f"Creating site {site_key}")
        elif site_data.get("name"):
            site.name = site_data["name"]

        summary = ImportSummary(site_key=site.key, site_id=site.id)
        importer = _SiteImporter(session, site)

        for item in _items(data, "entryTypes"):
            importer.entry_type(item)
            summary.entry_types += 1
        session.flush()
        for item in _items(data, "relationshipTypes"):
            importer.relationship_type(item)
            summary.relationship_types += 1
        session.flush()
        for item in _items(data, "entries"):
            importer.entry(item)
            summary.entries += 1
        # Entries must exist before relationships can point at them
        session.flush()
        for item in _items(data, "relationships"):
            importer.relationship(item)
            summary.relationships += 1

    logger.info(f"Imported {summary}")
    return summary


def _items(data: Dict[str, Any], section: str) -> List[Dict[str, Any]]:
    """The list of mappings under one section of the document."""
    items = data.get(section) or []
    if not isinstance(items, list):
        raise ValueError(f"'{section}' must be a list")
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Each item of '{section}' must be a mapping, got {item!r}")
    return items


def _check_id(model, id: Any) -> None:
    """Ids must be usable inside E[...], RT[...] and the other literals."""
    if not isinstance(id, str) or not LITERAL_ID_PATTERN.match(id):
        raise ValueError(
            f"Invalid {model.__name__} id {id!r} (use letters, digits, '_' and '-')"
        )


class _SiteImporter:
    """Creates or updates the rows of one site within a session."""

    def __init__(self, session: Session, site: Site):
        self.session = session
        self.site = site

    def _upsert(self, model, item: Dict[str, Any]):
        if item.get("id"):
            _check_id(model, item["id"])
        obj = self.session.get(model, item["id"]) if item.get("id") else None
        if obj is None:
            obj = model(id=item.get("id") or new_id(), site_id=self.site.id)
            self.session.add(obj)
        elif obj.site_id != self.site.id:
            raise ValueError(f"{model.__name__} '{obj.id}' belongs to a different site")
        return obj

    def _require(self, item: Dict[str, Any], field: str, kind: str) -> Any:
        value = item.get(field)
        if value is None or value == "":
            raise ValueError(f"{kind} {item!r} is missing '{field}'")
        return value

    # -- schema ---------------------------------------------------------------

    def entry_type(self, item: Dict[str, Any]) -> EntryType:
        name = self._require(item, "name", "Entry type")
        entry_type = self._upsert(EntryType, item)
        entry_type.name = name
        return entry_type

    def relationship_type(self, item: Dict[str, Any]) -> RelationshipType:
        name = self._require(item, "name", "Relationship type")
        category = str(item.get("category") or RelationshipCategory.RELATES_TO.value).upper()
        try:
            category = RelationshipCategory(category)
        except ValueError:
            valid = ", ".join(c.value for c in RelationshipCategory)
            raise ValueError(f"Relationship type '{name}' has unknown category '{category}' (expected one of {valid})") from None
        rel_type = self._upsert(RelationshipType, item)
        rel_type.name = name
        rel_type.category = category
        return rel_type

    # -- content --------------------------------------------------------------

    def entry(self, item: Dict[str, Any]) -> Entry:
        name = self._require(item, "name", "Entry")
        type_ref = self._require(item, "type", "Entry")
        entry_type_id = self._resolve(EntryType, type_ref)
        if entry_type_id is None:
            raise ValueError(f"Entry '{name}' refers to unknown entry type '{type_ref}'")

        entry = self._upsert(Entry, item)
        entry.name = name
        entry.entry_type_id = entry_type_id
        entry.key = item.get("key")
        entry.description = item.get("description", "")
        return entry

    def relationship(self, item: Dict[str, Any]) -> RelationshipFact:
        refs = {}
        for field, model in (("from", Entry), ("type", RelationshipType), ("to", Entry)):
            ref = self._require(item, field, "Relationship")
            refs[field] = self._resolve(model, ref)
            if refs[field] is None:
                raise ValueError(f"Relationship {item!r} refers to unknown {model.__name__} '{ref}'")

        weight = item.get("weight")
        if weight is not None and (isinstance(weight, bool) or not isinstance(weight, int)):
            raise ValueError(f"Relationship {item!r} has a non-integer weight")
        note = item.get("note")
        if note is not None and not isinstance(note, str):
            raise ValueError(f"Relationship {item!r} has a non-string note")

        if item.get("id"):
            _check_id(RelationshipFact, item["id"])
            fact = self.session.get(RelationshipFact, item["id"])
        else:
            # Without an id, the same (from, type, to) triple is the same fact
            fact = self.session.scalar(
                select(RelationshipFact).where(
                    RelationshipFact.from_entry_id == refs["from"],
                    RelationshipFact.rel_type_id == refs["type"],
                    RelationshipFact.to_entry_id == refs["to"],
                )
            )
        if fact is None:
            fact = RelationshipFact(id=item.get("id") or new_id())
            self.session.add(fact)

        fact.from_entry_id = refs["from"]
        fact.rel_type_id = refs["type"]
        fact.to_entry_id = refs["to"]
        fact.weight = weight
        fact.note = note
        self.session.flush()
        return fact

    def _resolve(self, model, ref: str) -> Optional[str]:
        """Find the id of a row of this site by id, or by name (types) or key (entries)."""
        alt = model.key if model is Entry else model.name
        return self.session.scalar(
            select(model.id)
            .where(model.site_id == self.site.id)
            .where(or_(model.id == ref, alt == ref))
            .order_by((model.id == ref).desc())
            .limit(1)
        )
