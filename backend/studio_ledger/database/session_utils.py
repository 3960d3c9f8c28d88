"""
Dialect helpers for sessions.

Row locks (``SELECT ... FOR UPDATE``) only exist on server databases; on
SQLite the engine serializes writers with ``BEGIN IMMEDIATE`` instead, so
repositories ask here before adding a lock clause.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

_ROW_LOCK_DIALECTS = frozenset({"postgresql", "mysql", "mariadb", "oracle"})


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Return the dialect name of the engine bound to ``session``."""
    bind = session.get_bind()
    if bind is None:
        return default
    return getattr(bind.dialect, "name", None) or default


def supports_row_locks(session: Session) -> bool:
    return get_dialect_name(session) in _ROW_LOCK_DIALECTS
