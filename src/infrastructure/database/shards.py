"""Async database shard manager with per-request query profiling.

The shard manager is a process-wide service: the bootstrap pipeline's
database step resolves it from the registry (constructing it on first use)
and registers it as the request's database collaborator. Engines are
created lazily, one per configured shard, so no connection is opened until a
controller actually talks to a shard.

Every engine gets cursor-execute listeners that time each statement and
record it in the database profiler bound to the current request context.
Slow statements are additionally logged with sanitized parameters when SQL
logging is enabled.
"""

import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import Settings
from src.core.context import RequestContext
from src.core.error_context import sanitize_sql_params
from src.infrastructure.constants import (
    COMMAND_TIMEOUT_SECONDS,
    MAX_LOGGED_STATEMENT_LENGTH,
    POOL_RECYCLE_SECONDS,
)

DEFAULT_SHARD = "default"


class UnknownShardError(KeyError):
    """Raised when a shard name is not configured."""


class QueryProfilingListener:
    """Cursor-execute listeners recording statements for one shard.

    Args:
        shard: Name of the shard the engine serves.
        settings: Application settings (SQL logging switches).
    """

    def __init__(self, shard: str, settings: Settings) -> None:
        self.shard = shard
        self._log_config = settings.log_config
        self._start_times: WeakKeyDictionary[ExecutionContext, float] = (
            WeakKeyDictionary()
        )

    def attach(self, engine: AsyncEngine) -> None:
        """Register the listeners on the engine's sync core."""
        event.listen(engine.sync_engine, "before_cursor_execute", self.before_execute)
        event.listen(engine.sync_engine, "after_cursor_execute", self.after_execute)

    def before_execute(  # noqa: PLR0913 - SQLAlchemy event signature
        self,
        _conn: Connection,
        _cursor: DBAPICursor,
        _statement: str,
        _parameters: object,
        context: ExecutionContext,
        _executemany: bool,  # noqa: FBT001
    ) -> None:
        """Remember when the statement started."""
        self._start_times[context] = time.perf_counter()

    def after_execute(  # noqa: PLR0913 - SQLAlchemy event signature
        self,
        _conn: Connection,
        cursor: DBAPICursor,
        statement: str,
        parameters: object,
        context: ExecutionContext,
        executemany: bool,  # noqa: FBT001
    ) -> None:
        """Record the statement in the request's profiler and flag slow ones."""
        start = self._start_times.pop(context, None)
        duration_ms = 0.0 if start is None else (time.perf_counter() - start) * 1000
        clean_statement = " ".join(statement.split())[:MAX_LOGGED_STATEMENT_LENGTH]
        sanitized = sanitize_sql_params(parameters)

        profiler = RequestContext.get_database_profiler()
        if profiler is not None:
            profiler.add_query(
                clean_statement, round(duration_ms, 3), self.shard, sanitized
            )

        if (
            self._log_config.enable_sql_logging
            and duration_ms >= self._log_config.slow_query_threshold_ms
        ):
            logger.warning(
                "Slow query detected on shard {}: {:.2f}ms",
                self.shard,
                duration_ms,
                query=clean_statement,
                parameters=sanitized,
                rows_affected=getattr(cursor, "rowcount", -1),
                executemany=executemany,
                threshold_ms=self._log_config.slow_query_threshold_ms,
            )


def create_database_engine(url: str, settings: Settings) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Args:
        url: Connection URL of the shard.
        settings: Application settings holding the pool configuration.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    db_config = settings.database_config
    return create_async_engine(
        url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=db_config.pool_pre_ping,
        echo=db_config.echo,
        pool_recycle=POOL_RECYCLE_SECONDS,
        connect_args={
            "server_settings": {"jit": "off"},
            "command_timeout": COMMAND_TIMEOUT_SECONDS,
        },
    )


class ShardManager:
    """Lazily created engines and session factories, one per shard.

    Args:
        settings: Application settings with the shard URLs.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._urls = settings.database_config.get_shard_urls()
        self._engines: dict[str, AsyncEngine] = {}
        self._session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}
        self._lock = threading.Lock()

    @property
    def shard_names(self) -> list[str]:
        """Configured shard names, the default shard first."""
        return list(self._urls)

    def get_engine(self, shard: str = DEFAULT_SHARD) -> AsyncEngine:
        """Get or create the engine of a shard.

        Args:
            shard: Shard name.

        Returns:
            AsyncEngine: The shard's engine.

        Raises:
            UnknownShardError: If the shard is not configured.
        """
        if shard not in self._urls:
            raise UnknownShardError(shard)

        engine = self._engines.get(shard)
        if engine is None:
            with self._lock:
                # Double-checked locking pattern
                engine = self._engines.get(shard)
                if engine is None:
                    engine = self._create_engine(shard)
                    self._engines[shard] = engine
        return engine

    def _create_engine(self, shard: str) -> AsyncEngine:
        engine = create_database_engine(self._urls[shard], self._settings)
        QueryProfilingListener(shard, self._settings).attach(engine)
        if self._settings.observability_config.enable_tracing:
            SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
        logger.info(
            "Created database engine for shard {} - pool_size: {}, max_overflow: {}",
            shard,
            self._settings.database_config.pool_size,
            self._settings.database_config.max_overflow,
        )
        return engine

    def get_session_factory(
        self, shard: str = DEFAULT_SHARD
    ) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory of a shard."""
        factory = self._session_factories.get(shard)
        if factory is None:
            engine = self.get_engine(shard)
            with self._lock:
                factory = self._session_factories.setdefault(
                    shard,
                    async_sessionmaker(
                        engine, class_=AsyncSession, expire_on_commit=False
                    ),
                )
        return factory

    @asynccontextmanager
    async def session(self, shard: str = DEFAULT_SHARD) -> AsyncGenerator[AsyncSession]:
        """Open a session on a shard, committing on success.

        Args:
            shard: Shard name.

        Yields:
            AsyncGenerator[AsyncSession]: The session.

        Raises:
            Exception: Anything raised inside the block, after rollback.
        """
        async with self.get_session_factory(shard)() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                logger.debug("Session on shard {} rolled back", shard)
                raise

    async def check_connection(
        self, shard: str = DEFAULT_SHARD
    ) -> tuple[bool, str | None]:
        """Check if a shard accepts connections.

        Returns:
            tuple[bool, str | None]: Health flag and the error message, if any.
        """
        try:
            async with self.get_engine(shard).connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                _ = result.scalar()
        except SQLAlchemyError as e:
            return False, str(e)
        else:
            return True, None

    async def close(self) -> None:
        """Dispose every engine created so far."""
        engines = list(self._engines.items())
        self._engines.clear()
        self._session_factories.clear()
        for shard, engine in engines:
            await engine.dispose()
            logger.info("Database engine for shard {} disposed", shard)

    def describe(self) -> dict[str, Any]:
        """Shard names and whether their engine has been created."""
        return {name: name in self._engines for name in self._urls}
