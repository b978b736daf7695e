import logging
from contextlib import contextmanager
from os import getenv

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import scoped_session, sessionmaker

from models.base_model import Base
from models.refresh_token import RefreshToken  # noqa: F401  (registers the table)
from models.user import User  # noqa: F401
from utils.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///auth-session.db"

# SQLite reports contention and I/O trouble as OperationalError, next to
# plain statement errors such as "no such table"
SQLITE_UNAVAILABLE_MESSAGES = (
    "database is locked",
    "database is busy",
    "unable to open database",
    "disk i/o error",
)


class DBStorage:
    __engine = None
    __session = None

    def __init__(self, url=None, timeout=5, echo=False):
        """Initialize engine; every store call is bounded by `timeout` seconds."""
        url = url or getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        if url.startswith("sqlite"):
            self.__engine = create_engine(url, echo=echo, connect_args={"timeout": timeout})

            # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            connect_args = {}
            if url.startswith("postgresql"):
                connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
            self.__engine = create_engine(
                url,
                echo=echo,
                pool_pre_ping=True,
                pool_timeout=timeout,
                connect_args=connect_args,
            )

    @property
    def engine(self):
        return self.__engine

    def reload(self):
        """Create tables and start session"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def save(self):
        """Commit session"""
        try:
            self.__session.commit()
        except SQLAlchemyError:
            self.__session.rollback()
            raise

    def delete(self, obj=None):
        """Delete object if exists (hard delete)"""
        if obj:
            self.__session.delete(obj)

    @contextmanager
    def transaction(self):
        """
        Unit of work: yields the thread's session, commits when the block
        exits normally and rolls back on any exception. Connection failures
        and timeouts surface as StoreUnavailable; they are never retried here.
        """
        session = self.__session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            if not self.is_unavailable(exc):
                raise
            logger.error("Store unavailable: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc
        except BaseException:
            session.rollback()
            raise

    def is_unavailable(self, exc):
        """True for connection, lock and timeout failures; False for bad statements."""
        if isinstance(exc, (InterfaceError, PoolTimeoutError)):
            return True
        if not isinstance(exc, OperationalError):
            return False
        if exc.connection_invalidated or self.__engine.dialect.name != "sqlite":
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in SQLITE_UNAVAILABLE_MESSAGES)

    def ping(self):
        """Round-trip to the database; raises StoreUnavailable when it is down."""
        with self.transaction() as session:
            session.execute(text("SELECT 1"))

    def close(self):
        """Remove session (for API teardown)"""
        self.__session.remove()

    def drop_all(self):
        Base.metadata.drop_all(self.__engine)

    # expose the SQLAlchemy session for advanced querying (joins, filters, etc.)
    def get_session(self):
        return self.__session
