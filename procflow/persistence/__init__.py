"""Stores for workflow graphs, process instances and their history."""

from __future__ import annotations

import logging
from typing import Optional

from ..config import ProcflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

logger = logging.getLogger(__name__)

SQLITE_SCHEME = "sqlite://"
MEMORY_SCHEME = "memory://"

_repository_instance: WorkflowRepository | None = None


def _open(database_url: Optional[str]) -> WorkflowRepository:
    if not database_url or database_url == MEMORY_SCHEME:
        return InMemoryWorkflowRepository()
    if database_url.startswith(SQLITE_SCHEME):
        path = database_url[len(SQLITE_SCHEME):]
        if not path:
            raise ValueError(f"{database_url!r} does not name a database file")
        return SQLiteWorkflowRepository(path)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[ProcflowConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    ``database_url`` wins over ``config.database_url``, which
    :func:`~procflow.config.load_config` already overrides from
    ``PROCFLOW_DATABASE_URL`` or ``DATABASE_URL``. ``sqlite://PATH`` opens a
    SQLite file; ``memory://`` or no URL at all gives an in-memory store.

    The repository is cached. Passing a URL or a config replaces it.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = database_url or (config or load_config()).database_url
    _repository_instance = _open(url)
    logger.debug(f"Opened {type(_repository_instance).__name__} for {url or MEMORY_SCHEME}")
    return _repository_instance


def reset_repository() -> None:
    """Forget the cached repository, e.g. between tests."""
    global _repository_instance
    _repository_instance = None


__all__ = [
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "WorkflowRepository",
    "get_repository",
    "reset_repository",
]
