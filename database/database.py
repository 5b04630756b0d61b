import os
import logging

from sqlalchemy import event
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.exc import OperationalError, DBAPIError, DisconnectionError

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./case_tracker.db")

engine = create_engine(
    DATABASE_URL,
    connect_args=(
        {"check_same_thread": False}
        if "sqlite" in DATABASE_URL
        else {}
    ),
    # Recycle connections dropped by the server between requests
    pool_pre_ping=True,
)


if "sqlite" in DATABASE_URL:

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class DatabaseConnectionError(Exception):
    """Raised when the DB connection fails (e.g. psycopg2 OperationalError).

    Routes can catch this and return 503 / log as needed.
    """


def get_db():
    db = SessionLocal()
    try:
        try:
            yield db
        except (OperationalError, DBAPIError, DisconnectionError) as e:
            logging.getLogger("app.database").exception(
                "Database operational error: %s", e
            )
            raise DatabaseConnectionError(str(e)) from e
    finally:
        db.close()
