from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from .config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Writers queue on the database lock for up to `timeout` seconds
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    # Configure connection pool for server databases
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


def enable_sqlite_savepoints(target: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on pysqlite.

    Transactions start IMMEDIATE: the write lock is taken up front, so a
    request that reads before writing waits its turn instead of failing the
    SHARED to RESERVED upgrade with "database is locked".
    """

    @event.listens_for(target, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_engine(settings.database_url, future=True, **_engine_options(settings.database_url))
if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

# Fresh Session per request; never share one across requests
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
