"""
Small helpers shared across kblookup.
"""
import logging
import uuid
from typing import Optional

from rich.logging import RichHandler

_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


def new_id() -> str:
    """
    Generate a new identifier for an entry, type or relationship fact.

    Identifiers are a leading underscore followed by a base-62 encoding of a
    random UUID, e.g. ``_6FisU5zxXg5LcDz4Kb3Wmd``. They only use characters
    that are valid inside ``E[...]`` style literals.
    """
    n = uuid.uuid4().int
    chars = []
    while n:
        n, rem = divmod(n, 62)
        chars.append(_ID_ALPHABET[rem])
    return "_" + "".join(reversed(chars))


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command-line use."""
    level_name = (level or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
