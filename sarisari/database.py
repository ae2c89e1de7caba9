"""Database configuration and the Ledger Store storage handle."""
import logging
from contextlib import contextmanager

from sqlalchemy import BigInteger, Integer, create_engine, event, or_
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from sarisari.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# BIGINT on PostgreSQL, INTEGER on SQLite so the rowid autoincrements
BigIntId = BigInteger().with_variant(Integer, 'sqlite')


def store_scope(column, store_id):
    """
    Filter clause for store-scoped rows.

    Rows without a store are shared by every store; otherwise the row must
    belong to the caller's store.
    """
    if store_id is None:
        return column.is_(None)
    return or_(column.is_(None), column == store_id)


class LedgerStore:
    """
    Explicitly constructed storage handle shared by every component.

    Owns the engine and session factory. All multi-row mutations go through
    transaction(), which commits on normal exit and rolls back otherwise.
    """

    def __init__(self, database_uri, echo=False, timeout_seconds=5, pool_size=10, max_overflow=20):
        self.database_uri = database_uri
        self.timeout_seconds = timeout_seconds
        self.engine = self._create_engine(database_uri, echo, timeout_seconds, pool_size, max_overflow)
        self.session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

        from sarisari.models.immutability import register_immutability_guard
        register_immutability_guard(self.session_factory)

    @property
    def is_sqlite(self):
        return self.engine.dialect.name == 'sqlite'

    @staticmethod
    def _create_engine(database_uri, echo, timeout_seconds, pool_size, max_overflow):
        if database_uri.startswith('sqlite'):
            engine = create_engine(
                database_uri,
                echo=echo,
                connect_args={'check_same_thread': False, 'timeout': timeout_seconds},
            )

            @event.listens_for(engine, 'connect')
            def _sqlite_connect(dbapi_connection, connection_record):
                # Let SQLAlchemy emit BEGIN itself (pysqlite defers it otherwise)
                dbapi_connection.isolation_level = None
                dbapi_connection.execute('PRAGMA foreign_keys=ON')

            @event.listens_for(engine, 'begin')
            def _sqlite_begin(conn):
                # Take the write lock up front so concurrent writers queue
                # on the busy timeout instead of failing on lock upgrade.
                conn.exec_driver_sql('BEGIN IMMEDIATE')

            return engine

        timeout_ms = int(timeout_seconds * 1000)
        return create_engine(
            database_uri,
            echo=echo,
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=timeout_seconds,
            connect_args={
                'connect_timeout': max(1, int(timeout_seconds)),
                'options': f'-c lock_timeout={timeout_ms} -c statement_timeout={timeout_ms}',
            },
        )

    def create_all(self):
        """Create every table registered on Base."""
        import sarisari.models  # noqa: F401
        Base.metadata.create_all(self.engine)

    def drop_all(self):
        import sarisari.models  # noqa: F401
        Base.metadata.drop_all(self.engine)

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def transaction(self):
        """
        Scoped unit of work.

        Yields a session bound to a single database transaction. The
        transaction commits when the block exits normally; any exception
        rolls it back, so no partial effect is ever visible. Storage
        failures surface as StorageUnavailableError.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except (OperationalError, DBAPIError) as e:
            session.rollback()
            if isinstance(e, OperationalError) or e.connection_invalidated:
                logger.error(f"Storage unavailable, transaction rolled back: {e}")
                raise StorageUnavailableError(str(e.orig) if e.orig else str(e)) from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def init_db(app):
    """Build the Ledger Store for a Flask app and register it as an extension."""
    store = LedgerStore(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        timeout_seconds=app.config.get('STORAGE_TIMEOUT_SECONDS', 5),
        pool_size=app.config.get('DB_POOL_SIZE', 10),
        max_overflow=app.config.get('DB_MAX_OVERFLOW', 20),
    )
    app.extensions['ledger_store'] = store
    return store


def get_store(app=None):
    """Get the Ledger Store of the current (or given) app."""
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions['ledger_store']
