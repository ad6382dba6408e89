"""Unit tests for the database shard manager and query profiling."""

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.exc import OperationalError

from src.core.config import DatabaseConfig, LogConfig, Settings
from src.core.constants import REDACTED
from src.core.context import RequestContext
from src.core.profiling import DatabaseProfiler
from src.infrastructure.database import (
    DEFAULT_SHARD,
    QueryProfilingListener,
    ShardManager,
    UnknownShardError,
    create_database_engine,
)

REPORTING_URL = "postgresql+asyncpg://u:p@db/reporting"


@pytest.fixture
def shard_settings(mock_settings: Settings) -> Settings:
    """Settings with a default and a reporting shard."""
    return mock_settings.model_copy(
        update={"database_config": DatabaseConfig(shards={"reporting": REPORTING_URL})}
    )


@pytest.mark.unit
class TestCreateDatabaseEngine:
    """Engine construction."""

    def test_pool_settings(
        self, mocker: MockerFixture, mock_settings: Settings
    ) -> None:
        """Pool options come from the database section."""
        create = mocker.patch("src.infrastructure.database.shards.create_async_engine")

        create_database_engine(REPORTING_URL, mock_settings)

        kwargs = create.call_args.kwargs
        assert create.call_args.args[0] == REPORTING_URL
        assert kwargs["pool_size"] == mock_settings.database_config.pool_size
        assert kwargs["pool_recycle"] == 3600
        assert kwargs["connect_args"]["command_timeout"] == 60


@pytest.mark.unit
class TestShardManager:
    """Lazy engines per shard."""

    def test_shard_names(self, shard_settings: Settings) -> None:
        """The default shard is listed first."""
        assert ShardManager(shard_settings).shard_names == [DEFAULT_SHARD, "reporting"]

    def test_engine_created_once(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Each shard gets one engine with the profiling listeners."""
        create = mocker.patch(
            "src.infrastructure.database.shards.create_database_engine",
            side_effect=lambda *_: mocker.Mock(),
        )
        attach = mocker.patch.object(QueryProfilingListener, "attach")
        manager = ShardManager(shard_settings)

        first = manager.get_engine("reporting")
        second = manager.get_engine("reporting")

        assert first is second
        create.assert_called_once_with(REPORTING_URL, shard_settings)
        attach.assert_called_once_with(first)
        assert manager.describe() == {DEFAULT_SHARD: False, "reporting": True}

    def test_unknown_shard(self, shard_settings: Settings) -> None:
        """Unconfigured shards are rejected."""
        with pytest.raises(UnknownShardError):
            ShardManager(shard_settings).get_engine("archive")

    def test_tracing_instruments_engine(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Engines are instrumented when tracing is on."""
        shard_settings.observability_config.enable_tracing = True
        engine = mocker.Mock()
        mocker.patch(
            "src.infrastructure.database.shards.create_database_engine",
            return_value=engine,
        )
        mocker.patch.object(QueryProfilingListener, "attach")
        instrumentor = mocker.patch(
            "src.infrastructure.database.shards.SQLAlchemyInstrumentor"
        )

        ShardManager(shard_settings).get_engine()

        instrumentor.return_value.instrument.assert_called_once_with(
            engine=engine.sync_engine
        )

    async def test_session_commits(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """A block that completes is committed."""
        session = mocker.AsyncMock()
        factory = mocker.Mock()
        factory.return_value.__aenter__ = mocker.AsyncMock(return_value=session)
        factory.return_value.__aexit__ = mocker.AsyncMock(return_value=False)
        manager = ShardManager(shard_settings)
        mocker.patch.object(manager, "get_session_factory", return_value=factory)

        async with manager.session("reporting") as current:
            assert current is session

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    async def test_session_rolls_back(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """A failing block is rolled back and the error re-raised."""
        session = mocker.AsyncMock()
        factory = mocker.Mock()
        factory.return_value.__aenter__ = mocker.AsyncMock(return_value=session)
        factory.return_value.__aexit__ = mocker.AsyncMock(return_value=False)
        manager = ShardManager(shard_settings)
        mocker.patch.object(manager, "get_session_factory", return_value=factory)

        with pytest.raises(ValueError, match="boom"):
            async with manager.session():
                msg = "boom"
                raise ValueError(msg)

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_check_connection_failure(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Connection errors are reported, not raised."""
        engine = mocker.Mock()
        engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        manager = ShardManager(shard_settings)
        mocker.patch.object(manager, "get_engine", return_value=engine)

        healthy, error = await manager.check_connection()

        assert not healthy
        assert error is not None
        assert "down" in error

    async def test_check_connection_success(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """A shard answering SELECT 1 is healthy."""
        conn = mocker.AsyncMock()
        engine = mocker.Mock()
        engine.connect.return_value.__aenter__ = mocker.AsyncMock(return_value=conn)
        engine.connect.return_value.__aexit__ = mocker.AsyncMock(return_value=False)
        manager = ShardManager(shard_settings)
        mocker.patch.object(manager, "get_engine", return_value=engine)

        assert await manager.check_connection("reporting") == (True, None)
        conn.execute.assert_awaited_once()

    async def test_close_disposes_engines(
        self, shard_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Every created engine is disposed and forgotten."""
        engine = mocker.Mock()
        engine.dispose = mocker.AsyncMock()
        mocker.patch(
            "src.infrastructure.database.shards.create_database_engine",
            return_value=engine,
        )
        mocker.patch.object(QueryProfilingListener, "attach")
        manager = ShardManager(shard_settings)
        manager.get_engine()

        await manager.close()

        engine.dispose.assert_awaited_once()
        assert manager.describe() == {DEFAULT_SHARD: False, "reporting": False}


@pytest.mark.unit
class TestQueryProfilingListener:
    """Statement recording."""

    def test_records_into_request_profiler(
        self, mock_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Statements land in the profiler bound to the request context."""
        profiler = DatabaseProfiler()
        RequestContext.set_database_profiler(profiler)
        mocker.patch(
            "src.infrastructure.database.shards.time.perf_counter",
            side_effect=[1.0, 1.004],
        )
        listener = QueryProfilingListener("reporting", mock_settings)
        context = mocker.Mock()

        listener.before_execute(
            None, None, "SELECT", None, context, False  # type: ignore[arg-type]
        )
        listener.after_execute(
            None,  # type: ignore[arg-type]
            mocker.Mock(rowcount=1),
            "SELECT *\n  FROM orders WHERE id = :id",
            {"id": 1, "password": "p"},
            context,
            False,  # noqa: FBT003
        )

        query = profiler.queries[0]
        assert query.statement == "SELECT * FROM orders WHERE id = :id"
        assert query.duration_ms == 4.0
        assert query.shard == "reporting"
        assert query.parameters == {"id": 1, "password": REDACTED}

    def test_without_bound_profiler(
        self, mock_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Queries outside a request are not recorded anywhere."""
        listener = QueryProfilingListener(DEFAULT_SHARD, mock_settings)

        listener.after_execute(
            None, None, "SELECT 1", None, mocker.Mock(), False  # type: ignore[arg-type]
        )

        assert RequestContext.get_database_profiler() is None

    def test_logs_slow_queries(
        self, mock_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Slow statements are logged when SQL logging is on."""
        settings = mock_settings.model_copy(
            update={
                "log_config": LogConfig(
                    enable_sql_logging=True, slow_query_threshold_ms=10
                )
            }
        )
        mock_logger = mocker.patch("src.infrastructure.database.shards.logger")
        mocker.patch(
            "src.infrastructure.database.shards.time.perf_counter",
            side_effect=[1.0, 1.5],
        )
        listener = QueryProfilingListener(DEFAULT_SHARD, settings)
        context = mocker.Mock()

        listener.before_execute(
            None, None, "SELECT", None, context, False  # type: ignore[arg-type]
        )
        listener.after_execute(
            None,  # type: ignore[arg-type]
            mocker.Mock(rowcount=3),
            "SELECT pg_sleep(0.5)",
            None,
            context,
            False,  # noqa: FBT003
        )

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["rows_affected"] == 3

    def test_attach_registers_listeners(
        self, mock_settings: Settings, mocker: MockerFixture
    ) -> None:
        """Both cursor events are listened to."""
        listen = mocker.patch("src.infrastructure.database.shards.event.listen")
        engine = mocker.Mock()

        QueryProfilingListener(DEFAULT_SHARD, mock_settings).attach(engine)

        events = [call.args[1] for call in listen.call_args_list]
        assert events == ["before_cursor_execute", "after_cursor_execute"]
