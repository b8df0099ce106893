# Overview: Row locking helper shared by the state machine, reconciler and stock service.

from __future__ import annotations


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but Postgres honors it.
    """
    return query.with_for_update()
