"""
Session gateways: whole-session load/save with optimistic versioning.

Components:
- SessionGateway: abstract contract
- InMemorySessionGateway: serialized documents held in process
- JsonFileSessionGateway: one JSON file per (course, learner)
- SqliteSessionGateway: one SQLite row per (course, learner)
"""

from .base import SessionGateway
from .documents import SessionDocument, dump_session, load_session
from .json_store import JsonFileSessionGateway
from .memory import InMemorySessionGateway
from .sqlite_store import SqliteSessionGateway


def create_gateway(settings) -> SessionGateway:
    """Build the gateway selected by settings.storage_backend."""
    if settings.storage_backend == "sqlite":
        return SqliteSessionGateway(settings.resolved_sqlite_path)
    return JsonFileSessionGateway(settings.resolved_session_dir)


__all__ = [
    "SessionGateway",
    "SessionDocument",
    "InMemorySessionGateway",
    "JsonFileSessionGateway",
    "SqliteSessionGateway",
    "create_gateway",
    "dump_session",
    "load_session",
]
