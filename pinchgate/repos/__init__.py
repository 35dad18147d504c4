"""Persistence for queue items, circuit state, options and audit records.

``interfaces`` holds the async Protocols components depend on; ``sql`` holds
the SQLAlchemy implementations and wiring helpers.
"""

from .interfaces import (
    AuditRepository,
    CircuitStateRepository,
    OptionRepository,
    QueueRepository,
)
from .sql import (
    SqlRepoBundle,
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)

__all__ = [
    "AuditRepository",
    "CircuitStateRepository",
    "OptionRepository",
    "QueueRepository",
    "SqlRepoBundle",
    "build_sql_repos",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
