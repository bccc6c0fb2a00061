"""
kblookup - lookup expressions over a knowledge-base graph.

A site's entries are connected by typed relationship facts. Lookup
expressions such as ``this.andAncestors()`` or
``related(this, via=RT[_HAS_A])`` query that graph and return paginated,
annotated results.
"""

__version__ = "0.1.0"
__author__ = "kblookup Contributors"

# Core database API
from kblookup.db import Database, get_db

# Configuration
from kblookup.config import LookupConfig, get_config, init_config

# Lookup engine
from kblookup.lookup import parse_lookup, evaluate_lookup, run_lookup

__all__ = [
    'Database', 'get_db',
    'LookupConfig', 'get_config', 'init_config',
    'parse_lookup', 'evaluate_lookup', 'run_lookup',
]
