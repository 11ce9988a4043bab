import logging
from typing import Any, Iterator, Type, TypeVar

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from paperstats.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


T = TypeVar("T", bound=Base)


def make_engine(url: str, **kwargs: Any) -> Engine:
    engine = create_engine(url, future=True, pool_pre_ping=True, echo=settings.DATABASE_ECHO, **kwargs)
    if engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine) -> None:
    """Create tables if they don't exist. Use migrations in production."""
    import paperstats.models.orm  # noqa: F401  registers the tables

    Base.metadata.create_all(bind)


def get_or_create(db: Session, model: Type[T], user_id: int, **defaults: Any) -> T:
    """Fetch the per-user row of ``model``, creating it with ``defaults`` on first access.

    Creation runs in a SAVEPOINT so a concurrent insert of the same row only
    costs a re-read.
    """
    row = db.scalar(select(model).where(model.user_id == user_id))
    if row is not None:
        return row
    try:
        with db.begin_nested():
            row = model(user_id=user_id, **defaults)
            db.add(row)
    except IntegrityError:
        logger.debug("Concurrent create of %s for user %s", model.__tablename__, user_id)
        row = db.scalar(select(model).where(model.user_id == user_id))
    return row
