"""Sharded async PostgreSQL access with SQLAlchemy 2.0+ and asyncpg.

Core components:
- **shards**: Lazily created engine and session factory per shard, with
  query profiling listeners and connection health checks
"""

from src.infrastructure.database.shards import (
    DEFAULT_SHARD,
    QueryProfilingListener,
    ShardManager,
    UnknownShardError,
    create_database_engine,
)

__all__ = [
    "DEFAULT_SHARD",
    "QueryProfilingListener",
    "ShardManager",
    "UnknownShardError",
    "create_database_engine",
]
