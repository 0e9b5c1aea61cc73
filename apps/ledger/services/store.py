"""
Persistence failure handling.

Writes that fail at the database layer surface as ``StoreError`` so callers
get a generic failure instead of a driver exception.
"""

import logging
from contextlib import contextmanager

from django.db import DatabaseError

from apps.ledger.exceptions import StoreError

logger = logging.getLogger(__name__)


@contextmanager
def store_write(action: str):
    """
    Wrap a write so database failures become StoreError.

    Args:
        action: Short description used in the log line and error message

    Raises:
        StoreError: If the wrapped block raises DatabaseError
    """
    try:
        yield
    except DatabaseError as exc:
        logger.error("Store write failed while trying to %s: %s", action, exc)
        raise StoreError(f"Could not {action}.") from exc
