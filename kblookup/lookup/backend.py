"""
Graph query transaction used by the lookup engine.

GraphTransaction is the only way the engine reaches the database. It runs
compiled entry queries on a SQLAlchemy session and returns plain rows shaped
like:

    {'entry': '<entry id>', 'annotations': {'distance': 2}}

Annotation values are returned raw; converting and validating them is the
job of the lazy value that issued the query. Database errors are not caught
here.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from kblookup.models import Entry, Site
from .fragment import EntryQuery, count_statement, rows_statement

logger = logging.getLogger(__name__)


class TransactionClosedError(RuntimeError):
    """A GraphTransaction was used after its evaluation finished."""
    pass


class GraphTransaction:
    """
    A read transaction belonging to exactly one lookup evaluation.

    Once closed (see Database.read()), every further call raises
    TransactionClosedError.
    """

    def __init__(self, session: Session):
        self.session = session
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _require_open(self) -> None:
        if self._closed:
            raise TransactionClosedError("This graph transaction has already been closed")

    def fetch_entries(
        self,
        query: EntryQuery,
        site_id: str,
        skip: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """
        Run the query for one page of rows.

        Returns:
            List of {'entry': id, 'annotations': {name: raw value}} in query order
        """
        self._require_open()
        stmt = rows_statement(query, site_id, skip=skip, limit=limit)
        logger.debug(f"Fetching entries (skip={skip}, limit={limit}): {stmt}")
        names = query.annotation_names
        result = self.session.execute(stmt).mappings().all()
        return [
            {'entry': row['entry_id'], 'annotations': {name: row[name] for name in names}}
            for row in result
        ]

    def count_entries(self, query: EntryQuery, site_id: str) -> int:
        """Run the count-only variant of the query."""
        self._require_open()
        stmt = count_statement(query, site_id)
        logger.debug(f"Counting entries: {stmt}")
        return int(self.session.execute(stmt).scalar_one())

    def site_id_for_key(self, site_key: str) -> Optional[str]:
        """Look up a site's id from its key."""
        self._require_open()
        return self.session.scalar(select(Site.id).where(Site.key == site_key))

    def entry_id_for(self, site_id: str, id_or_key: str) -> Optional[str]:
        """Find an entry of the site by its id or its key."""
        self._require_open()
        return self.session.scalar(
            select(Entry.id)
            .where(Entry.site_id == site_id)
            .where(or_(Entry.id == id_or_key, Entry.key == id_or_key))
            .limit(1)
        )
