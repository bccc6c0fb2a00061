"""
Shared fixtures for kblookup tests.

The "plants" site used throughout:

    Pine -IS_A-> Pinus -IS_A-> Pinaceae -IS_A-> Pinales -IS_A-> Pinopsida -IS_A-> Tracheophyta

plus HAS_A facts hanging off several of those entries, with a mix of
positive, zero, negative and missing weights. Only Pinus -> Cone has a note.
"""
import pytest

from kblookup.db import Database
from kblookup.importer import import_site_yaml
from kblookup.lookup import LookupContext

_PLANTS_YAML = """
site: {id: _SITE_PLANTS, key: plants, name: PlantDB}
entryTypes:
  - {id: _ET_TAXON, name: Taxon}
  - {id: _ET_PART, name: Plant part}
relationshipTypes:
  - {id: _IS_A, name: is a, category: IS_A}
  - {id: _HAS_A, name: has part, category: HAS_A}
entries:
  - {id: _PINE, name: Pine, type: _ET_TAXON, key: pine}
  - {id: _PINUS, name: Pinus, type: _ET_TAXON, key: pinus}
  - {id: _PINACEAE, name: Pinaceae, type: _ET_TAXON}
  - {id: _PINALES, name: Pinales, type: _ET_TAXON}
  - {id: _PINOPSIDA, name: Pinopsida, type: _ET_TAXON}
  - {id: _TRACHEOPHYTA, name: Tracheophyta, type: _ET_TAXON}
  - {id: _CONE, name: Cone, type: _ET_PART}
  - {id: _NEEDLE, name: Needle, type: _ET_PART}
  - {id: _BARK, name: Bark, type: _ET_PART}
  - {id: _SEED, name: Seed, type: _ET_PART}
  - {id: _VASCULAR, name: Vascular tissue, type: _ET_PART}
relationships:
  - {id: _RF1, from: _PINE, type: _IS_A, to: _PINUS}
  - {id: _RF2, from: _PINUS, type: _IS_A, to: _PINACEAE}
  - {id: _RF3, from: _PINACEAE, type: _IS_A, to: _PINALES}
  - {id: _RF4, from: _PINALES, type: _IS_A, to: _PINOPSIDA}
  - {id: _RF5, from: _PINOPSIDA, type: _IS_A, to: _TRACHEOPHYTA}
  - {id: _RF6, from: _PINUS, type: _HAS_A, to: _CONE, note: seed-bearing, weight: 10}
  - {id: _RF7, from: _PINUS, type: _HAS_A, to: _NEEDLE}
  - {id: _RF8, from: _TRACHEOPHYTA, type: _HAS_A, to: _VASCULAR, weight: 5}
  - {id: _RF9, from: _PINE, type: _HAS_A, to: _BARK, weight: 0}
  - {id: _RF10, from: _PINE, type: _HAS_A, to: _SEED, weight: -1}
"""

_PINE_ANCESTORS = ["_PINUS", "_PINACEAE", "_PINALES", "_PINOPSIDA", "_TRACHEOPHYTA"]


@pytest.fixture
def plants_yaml():
    """The plants site as a YAML import document."""
    return _PLANTS_YAML


@pytest.fixture
def pine_ancestors():
    """Ids of Pine's ancestors, nearest first."""
    return list(_PINE_ANCESTORS)


@pytest.fixture
def db(tmp_path):
    """An empty database in a temporary SQLite file."""
    return Database(path=str(tmp_path / "test.db"))


@pytest.fixture
def plants_db(db):
    """Database with the plants site imported."""
    import_site_yaml(db, _PLANTS_YAML)
    return db


@pytest.fixture
def tx(plants_db):
    """An open graph transaction on the plants database."""
    with plants_db.read() as tx:
        yield tx


@pytest.fixture
def context(tx):
    """Evaluation context with Pine as the current entry."""
    return LookupContext(tx, site_id="_SITE_PLANTS", entry_id="_PINE")
