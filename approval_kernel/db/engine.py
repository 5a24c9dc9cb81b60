"""
Module: approval_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation and
    transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except for
    create_tables/drop_tables which import the models so Base.metadata is
    populated).

Invariants enforced:
    - No hidden globals: engines and session factories are constructed
      explicitly and injected into the store.  Their lifecycle is process
      start to shutdown, owned by the caller.
    - PostgreSQL sessions run at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) on the approval row for every write.
    - Every statement is bounded: PostgreSQL gets ``statement_timeout``,
      SQLite gets a busy timeout, and ``pool_timeout`` bounds checkout.

Failure modes:
    - OperationalError when the database is unreachable or a statement
      exceeds the timeout (wrapped into StorageError by the store).
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from approval_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: float = 30,
    pool_recycle: int = 1800,
    statement_timeout: float = 5.0,
) -> Engine:
    """
    Build an Engine for ``database_url``.

    PostgreSQL URLs get a pooled engine at READ COMMITTED with a
    per-connection ``statement_timeout``.  SQLite URLs (used for local
    tests) get a busy timeout; in-memory SQLite shares one connection
    through a StaticPool so every session sees the same database.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://... or sqlite://).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        statement_timeout: Seconds any single statement may run.
    """
    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        kwargs: dict = {
            "connect_args": {
                "timeout": statement_timeout,
                "check_same_thread": False,
            },
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
    else:
        connect_args = {}
        if dialect == "postgresql":
            timeout_ms = int(statement_timeout * 1000)
            connect_args["options"] = f"-c statement_timeout={timeout_ms}"
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
            connect_args=connect_args,
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "statement_timeout": statement_timeout,
            "echo": echo,
        },
    )
    return engine


def create_engine_from_settings(settings) -> Engine:
    """Build an Engine from an ``approval_config.ApprovalSettings``."""
    return create_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.store_timeout_seconds,
        statement_timeout=settings.store_timeout_seconds,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory used by the store; one session per store call."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all approval tables (idempotent)."""
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"tables": sorted(Base.metadata.tables)},
    )


def drop_tables(engine: Engine) -> None:
    """Drop all approval tables. Use with caution - primarily for testing."""
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    """Check if the engine talks to PostgreSQL."""
    return engine.dialect.name == "postgresql"
