"""Dependency injection for FastAPI: the CMDB singleton."""

from __future__ import annotations

from cloudcmdb.service.cmdb import CMDB

_cmdb: CMDB | None = None


def init_cmdb(cmdb: CMDB) -> None:
    """Set the global CMDB (called at app startup)."""
    global _cmdb  # noqa: PLW0603
    _cmdb = cmdb


def get_cmdb() -> CMDB:
    """FastAPI ``Depends`` provider for the CMDB."""
    if _cmdb is None:
        raise RuntimeError("CMDB not initialised; call init_cmdb() first")
    return _cmdb


def reset_cmdb() -> None:
    """Clear the global CMDB (for tests)."""
    global _cmdb  # noqa: PLW0603
    _cmdb = None
