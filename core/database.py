"""
Database core module per employee-contacts.

Gestisce engine asincrono SQLite (aiosqlite), modalità WAL e transazioni
esplicite. pysqlite non apre transazioni prima dei DDL: qui il BEGIN viene
emesso da SQLAlchemy, così ALTER TABLE e INSERT condividono la stessa
transazione.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import event
from sqlalchemy import text as sql_text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.config import get_config

logger = logging.getLogger(__name__)

EMPLOYEES_TABLE = "employees"

# Opzione di esecuzione che sceglie il tipo di BEGIN (vedi _on_begin)
BEGIN_MODE_OPTION = "sqlite_begin_mode"

CREATE_EMPLOYEES_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {EMPLOYEES_TABLE} (
        hash TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        phone TEXT NOT NULL,
        joined TEXT NOT NULL
    )
"""

CREATE_NAME_INDEX = f"CREATE INDEX IF NOT EXISTS idx_{EMPLOYEES_TABLE}_name ON {EMPLOYEES_TABLE} (name COLLATE NOCASE)"


def _on_connect(dbapi_connection, connection_record):
    # Disabilita il BEGIN implicito del driver: lo emette _on_begin
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def _on_begin(conn):
    mode = conn.get_execution_options().get(BEGIN_MODE_OPTION, "DEFERRED")
    conn.exec_driver_sql(f"BEGIN {mode}")


def create_engine_for(database_url: Optional[str] = None, busy_timeout_sec: Optional[float] = None) -> AsyncEngine:
    """
    Crea engine asincrono SQLite con WAL e BEGIN esplicito.

    Args:
        database_url: URL sqlite+aiosqlite (default da config)
        busy_timeout_sec: Attesa massima su lock (default da config)

    Returns:
        AsyncEngine configurato
    """
    config = get_config()
    url = database_url or config.database_url
    timeout = busy_timeout_sec if busy_timeout_sec is not None else config.db_busy_timeout_sec

    connect_args: Dict[str, Any] = {"timeout": timeout}
    engine = create_async_engine(url, echo=False, connect_args=connect_args)

    event.listen(engine.sync_engine, "connect", _on_connect)
    event.listen(engine.sync_engine, "begin", _on_begin)

    logger.info(f"[DATABASE] Engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


async def create_tables(engine: AsyncEngine):
    """Crea la tabella base employees (idempotente)."""
    try:
        async with engine.begin() as conn:
            await conn.execute(sql_text(CREATE_EMPLOYEES_TABLE))
            await conn.execute(sql_text(CREATE_NAME_INDEX))
        logger.info(f"[DATABASE] Table {EMPLOYEES_TABLE} ready (WAL mode)")
    except Exception as e:
        logger.error(f"[DATABASE] Error creating tables: {e}", exc_info=True)
        raise


async def check_connection(engine: AsyncEngine) -> bool:
    """Health check connessione database."""
    try:
        async with engine.connect() as conn:
            await conn.execute(sql_text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"[DATABASE] Connection check failed: {e}")
        return False
