from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from dental_billing.core.config import settings
from dental_billing.core.exceptions import handle_database_error


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a sync engine; SQLite gets working SAVEPOINTs and enforced FKs."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False}
        )

        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # let SQLAlchemy emit BEGIN itself so nested transactions work
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            # writers ask for IMMEDIATE and queue on the database lock; readers stay deferred
            mode = conn.get_execution_options().get("sqlite_begin", "DEFERRED")
            conn.exec_driver_sql(f"BEGIN {mode}")

        return engine

    return create_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
        isolation_level="READ COMMITTED"
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
SessionLocal = build_session_factory(engine)

# Base model
Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _begin_write(db: Session) -> None:
    # a read transaction left open by earlier queries cannot be upgraded safely
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={"sqlite_begin": "IMMEDIATE"})


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back.

    On SQLite the block holds the write lock from its first statement, so
    concurrent writers wait for each other instead of failing on a lock
    upgrade. Store errors that escape the block surface as DatabaseError.
    """
    try:
        if db.get_bind().dialect.name == "sqlite":
            _begin_write(db)
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "unit of work") from e
    except Exception:
        db.rollback()
        raise


def init_db(bind: Optional[Engine] = None) -> None:
    """Initialize database tables"""
    # import models so they register on Base.metadata
    from dental_billing.domain.audit import models as _audit  # noqa: F401
    from dental_billing.domain.receipts import models as _receipts  # noqa: F401
    from dental_billing.domain.treatments import models as _treatments  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def close_db() -> None:
    """Close database connections"""
    engine.dispose()
