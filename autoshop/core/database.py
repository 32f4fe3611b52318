from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from autoshop.core.config import settings


Base = declarative_base()


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """pysqlite opens transactions lazily and breaks SAVEPOINT; take over BEGIN."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = create_db_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
