"""
Record store per i contatti dipendenti.

Una sola tabella (employees) con chiave content-addressed: l'hash SHA-256 di
name|email|phone|joined. Gli extra field diventano colonne TEXT aggiunte al
volo (schema append-only); ALTER TABLE e INSERT dello stesso batch girano
nella stessa transazione, così nessun lettore vede una colonna a metà.

Ogni operazione apre una propria transazione breve e restituisce un Outcome:
qualsiasi errore viene loggato e convertito in StorageFailed.
"""
import hashlib
import logging
import re
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import text as sql_text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from core.database import BEGIN_MODE_OPTION, EMPLOYEES_TABLE, create_tables
from core.errors import Outcome, duplicate_after_update, not_found, storage_failed
from ingest.normalization import format_joined_date
from ingest.types import ZERO_DATE, EmployeeRecord

logger = logging.getLogger(__name__)

BASE_COLUMNS = ("hash", "name", "email", "phone", "joined")

# Nomi mai usabili come colonna extra (confronto case-insensitive).
# rowid/oid/_rowid_ oscurerebbero l'ordinamento per inserimento.
RESERVED_COLUMN_NAMES = frozenset(BASE_COLUMNS) | {"tel", "rowid", "oid", "_rowid_"}

SAFE_COLUMN_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
MAX_COLUMN_NAME_LENGTH = 128


def compute_hash(record: EmployeeRecord) -> str:
    """SHA-256 (hex lowercase) di "name|email|phone|yyyy-MM-dd"."""
    payload = f"{record.name}|{record.email}|{record.phone}|{format_joined_date(record.joined)}"
    return hashlib.sha256(payload.encode("utf-8", errors="surrogatepass")).hexdigest()


def is_valid_column_name(name: Optional[str]) -> bool:
    """
    Verifica se una chiave extra può diventare colonna.

    Gli identificatori non si possono parametrizzare come i valori: questo
    controllo è l'unica barriera prima del DDL.
    """
    if not name or not name.strip():
        return False
    if len(name) > MAX_COLUMN_NAME_LENGTH:
        return False
    if any(ord(c) < 32 or ord(c) == 127 for c in name):
        return False
    if name.lower() in RESERVED_COLUMN_NAMES:
        return False
    return SAFE_COLUMN_NAME.fullmatch(name) is not None


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


def _fold_extra(extra: Dict[str, str]) -> Dict[str, str]:
    """Chiavi lowercase, vince la prima occorrenza."""
    folded: Dict[str, str] = {}
    for key, value in extra.items():
        folded.setdefault(key.lower(), value)
    return folded


def candidate_columns(records: Iterable[EmployeeRecord]) -> Tuple[List[str], List[str]]:
    """
    Chiavi extra distinte (case-insensitive, vince la prima grafia) del batch.

    Returns:
        Tuple (chiavi valide, chiavi rifiutate)
    """
    seen = set()
    valid: List[str] = []
    rejected: List[str] = []
    for record in records:
        for key in record.extra:
            folded = key.lower()
            if folded in seen:
                continue
            seen.add(folded)
            (valid if is_valid_column_name(key) else rejected).append(key)
    return valid, rejected


def _row_to_record(row) -> EmployeeRecord:
    extra: Dict[str, str] = {}
    for column, value in row.items():
        if column.lower() in BASE_COLUMNS or value is None:
            continue
        extra[column] = str(value)

    try:
        joined = date.fromisoformat(row["joined"])
    except (TypeError, ValueError):
        joined = ZERO_DATE

    return EmployeeRecord(
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        joined=joined,
        extra=extra,
    )


class EmployeeStore:
    """Store SQLite con dedup per hash e colonne extra dinamiche."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._ready = False

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def ready(self) -> bool:
        return self._ready

    async def initialize(self):
        """Crea la tabella base se assente. Idempotente."""
        if self._ready:
            return
        await create_tables(self._engine)
        self._ready = True

    async def close(self):
        await self._engine.dispose()

    @asynccontextmanager
    async def _transaction(self, write: bool = False):
        """
        Transazione breve su una connessione del pool.

        Le scritture usano BEGIN IMMEDIATE: il lock di scrittura è preso
        subito, prima di leggere lo schema.
        """
        async with self._engine.connect() as conn:
            if write:
                await conn.execution_options(**{BEGIN_MODE_OPTION: "IMMEDIATE"})
            async with conn.begin():
                yield conn

    async def _existing_columns(self, conn: AsyncConnection) -> Dict[str, str]:
        """Colonne attuali: nome lowercase -> nome reale."""
        result = await conn.exec_driver_sql(f"PRAGMA table_info({_quote(EMPLOYEES_TABLE)})")
        return {row[1].lower(): row[1] for row in result.fetchall()}

    async def _ensure_columns(self, conn: AsyncConnection, keys: List[str]) -> List[str]:
        """
        Garantisce una colonna TEXT per ogni chiave (già validata).

        Un "duplicate column" da una richiesta concorrente equivale a successo.

        Returns:
            Nomi reali delle colonne, nello stesso ordine di keys
        """
        existing = await self._existing_columns(conn)
        columns: List[str] = []

        for key in keys:
            folded = key.lower()
            if folded in existing:
                columns.append(existing[folded])
                continue

            if not is_valid_column_name(key):
                raise ValueError(f"Unsafe column name reached DDL: {key!r}")

            try:
                async with conn.begin_nested():
                    await conn.exec_driver_sql(
                        f"ALTER TABLE {_quote(EMPLOYEES_TABLE)} ADD COLUMN {_quote(key)} TEXT"
                    )
                logger.info(f"[EMPLOYEE_STORE] Dynamic column added: {key}")
            except OperationalError as e:
                if "duplicate column" not in str(e).lower():
                    raise
                logger.debug(f"[EMPLOYEE_STORE] Column already exists (concurrent request): {key}")

            existing[folded] = key
            columns.append(key)

        return columns

    async def insert_batch(self, records: List[EmployeeRecord]) -> Outcome:
        """
        Inserisce un batch ignorando i duplicati (stesso hash).

        Args:
            records: Record validati, in ordine di input

        Returns:
            Outcome con la lista dei soli record inseriti (ordine di input)
        """
        if not records:
            return Outcome.ok([])

        keys, rejected = candidate_columns(records)
        for key in rejected:
            logger.warning(f"[EMPLOYEE_STORE] Invalid column name ignored: {key!r}")

        inserted: List[EmployeeRecord] = []
        try:
            async with self._transaction(write=True) as conn:
                extra_columns = await self._ensure_columns(conn, keys)
                columns = list(BASE_COLUMNS) + extra_columns
                placeholders = ", ".join(f":p{i}" for i in range(len(columns)))
                insert_stmt = sql_text(
                    f"INSERT OR IGNORE INTO {_quote(EMPLOYEES_TABLE)} "
                    f"({', '.join(_quote(c) for c in columns)}) VALUES ({placeholders})"
                )

                for record in records:
                    folded = _fold_extra(record.extra)
                    params = {
                        "p0": compute_hash(record),
                        "p1": record.name,
                        "p2": record.email,
                        "p3": record.phone,
                        "p4": format_joined_date(record.joined),
                    }
                    for i, key in enumerate(keys, start=len(BASE_COLUMNS)):
                        params[f"p{i}"] = folded.get(key.lower())

                    result = await conn.execute(insert_stmt, params)
                    if result.rowcount > 0:
                        inserted.append(EmployeeRecord(
                            name=record.name,
                            email=record.email,
                            phone=record.phone,
                            joined=record.joined,
                            extra={k: v for k, v in record.extra.items() if is_valid_column_name(k)},
                        ))

        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error inserting batch: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))

        skipped = len(records) - len(inserted)
        if skipped > 0:
            logger.debug(f"[EMPLOYEE_STORE] Duplicate records ignored: {skipped}")
        logger.info(f"[EMPLOYEE_STORE] Insert completed: {len(inserted)}/{len(records)} inserted")
        return Outcome.ok(inserted)

    async def read_page(self, page: int, page_size: int) -> Outcome:
        """
        Pagina di record in ordine di inserimento.

        COUNT e SELECT condividono la transazione: il totale è coerente con
        la pagina anche sotto insert concorrenti.

        Returns:
            Outcome con Tuple (records, total_count)
        """
        page = max(page, 1)
        page_size = max(page_size, 1)
        try:
            async with self._transaction() as conn:
                total = (await conn.execute(
                    sql_text(f"SELECT COUNT(*) FROM {_quote(EMPLOYEES_TABLE)}")
                )).scalar_one()
                result = await conn.execute(
                    sql_text(
                        f"SELECT * FROM {_quote(EMPLOYEES_TABLE)} ORDER BY rowid LIMIT :limit OFFSET :offset"
                    ),
                    {"limit": page_size, "offset": (page - 1) * page_size},
                )
                items = [_row_to_record(row) for row in result.mappings().all()]
        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error reading page {page}: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))

        logger.debug(f"[EMPLOYEE_STORE] Page {page} read: {len(items)}/{total}")
        return Outcome.ok((items, int(total)))

    async def read_by_name(self, name: str) -> Outcome:
        """Primo record (per inserimento) con nome uguale, case-insensitive. None se assente."""
        try:
            async with self._transaction() as conn:
                result = await conn.execute(
                    sql_text(
                        f"SELECT * FROM {_quote(EMPLOYEES_TABLE)} "
                        f"WHERE name = :name COLLATE NOCASE ORDER BY rowid LIMIT 1"
                    ),
                    {"name": name},
                )
                row = result.mappings().first()
        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error reading by name: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))

        return Outcome.ok(_row_to_record(row) if row is not None else None)

    async def update_by_hash(self, old_hash: str, updated: EmployeeRecord) -> Outcome:
        """
        Sostituisce i campi base della riga con hash old_hash.

        Gli extra field della riga restano invariati.

        Returns:
            Outcome con il record aggiornato, oppure DuplicateAfterUpdate / NotFound
        """
        new_hash = compute_hash(updated)
        try:
            async with self._transaction(write=True) as conn:
                if new_hash != old_hash:
                    clash = (await conn.execute(
                        sql_text(f"SELECT 1 FROM {_quote(EMPLOYEES_TABLE)} WHERE hash = :hash"),
                        {"hash": new_hash},
                    )).first()
                    if clash is not None:
                        logger.info(f"[EMPLOYEE_STORE] Update would duplicate hash {new_hash[:12]}")
                        return Outcome.fail(duplicate_after_update())

                result = await conn.execute(
                    sql_text(
                        f"UPDATE {_quote(EMPLOYEES_TABLE)} SET hash = :new_hash, name = :name, "
                        f"email = :email, phone = :phone, joined = :joined WHERE hash = :old_hash"
                    ),
                    {
                        "new_hash": new_hash,
                        "name": updated.name,
                        "email": updated.email,
                        "phone": updated.phone,
                        "joined": format_joined_date(updated.joined),
                        "old_hash": old_hash,
                    },
                )
                if result.rowcount == 0:
                    logger.info(f"[EMPLOYEE_STORE] No row for hash {old_hash[:12]}")
                    return Outcome.fail(not_found(updated.name))

        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error updating record: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))

        logger.info(f"[EMPLOYEE_STORE] Record updated: {updated.name}")
        return Outcome.ok(updated)

    async def count(self) -> Outcome:
        """Numero totale di record."""
        try:
            async with self._transaction() as conn:
                total = (await conn.execute(
                    sql_text(f"SELECT COUNT(*) FROM {_quote(EMPLOYEES_TABLE)}")
                )).scalar_one()
        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error counting records: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))
        return Outcome.ok(int(total))

    async def known_columns(self) -> Outcome:
        """Colonne extra create finora (schema dinamico)."""
        try:
            async with self._transaction() as conn:
                existing = await self._existing_columns(conn)
        except Exception as e:
            logger.error(f"[EMPLOYEE_STORE] Error reading schema: {e}", exc_info=True)
            return Outcome.fail(storage_failed(type(e).__name__))
        return Outcome.ok(sorted(name for folded, name in existing.items() if folded not in BASE_COLUMNS))
