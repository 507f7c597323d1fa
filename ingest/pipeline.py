"""
Pipeline Orchestratore - ingest contatti dipendenti.

Flusso deterministico: dispatch (gate.py) → parse → validazione → salvataggio
(employee_store.py). Ogni fase restituisce un Outcome; il primo errore
bloccante interrompe la pipeline e risale al router.
"""
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from core.employee_store import EmployeeStore, compute_hash
from core.errors import (
    ErrorDetail,
    Outcome,
    field_invalid,
    no_valid_data,
    not_found,
    validation_failed,
)
from core.logger import get_correlation_id, log_json
from ingest.gate import select_parser
from ingest.normalization import parse_joined_date
from ingest.types import EmployeeRecord, IngestReport
from ingest.validation import validate_employee

logger = logging.getLogger(__name__)

Validator = Callable[[EmployeeRecord], Tuple[bool, List[Tuple[str, str]]]]


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


async def process_content(
    store: EmployeeStore,
    content: str,
    content_type: Optional[str] = None,
    file_extension: Optional[str] = None,
    validator: Validator = validate_employee,
) -> Outcome:
    """
    Orchestratore principale: testo in ingresso → record salvati.

    Flow:
    1. Dispatch: parser da metadati dichiarati, altrimenti sniffing
    2. Parse: ParseFailed blocca tutto, righe malformate solo scartate
    3. Validazione: record invalidi rifiutati con errori Employee[i].campo
    4. Salvataggio: INSERT OR IGNORE, i duplicati sono solo un conteggio

    Args:
        store: Record store inizializzato
        content: Payload testuale
        content_type: Content-type dichiarato (opzionale)
        file_extension: Estensione file con punto (opzionale)
        validator: Collaboratore di validazione (record → (valido, errori))

    Returns:
        Outcome con IngestReport, oppure lista errori
    """
    start_time = time.time()
    correlation_id = get_correlation_id()

    selection = select_parser(content, content_type, file_extension)
    if selection.is_error:
        log_json(
            level='warning',
            message='Nessun parser per il payload',
            correlation_id=correlation_id,
            stage='dispatch',
            elapsed_ms=_elapsed_ms(start_time),
            decision='error',
        )
        return Outcome.fail(*selection.errors)
    parser = selection.value

    parsed = parser.extract(content)
    if parsed.error is not None:
        log_json(
            level='error',
            message='Parsing fallito',
            correlation_id=correlation_id,
            stage='parse',
            parser=parser.name,
            elapsed_ms=_elapsed_ms(start_time),
            decision='error',
            error_code=parsed.error.code,
        )
        return Outcome.fail(parsed.error)

    if not parsed.records:
        log_json(
            level='warning',
            message='Nessun record estratto',
            correlation_id=correlation_id,
            stage='parse',
            parser=parser.name,
            rows_total=0,
            elapsed_ms=_elapsed_ms(start_time),
            decision='error',
            rows_skipped=len(parsed.skipped),
        )
        return Outcome.fail(no_valid_data())

    valid_records: List[EmployeeRecord] = []
    rejected: List[ErrorDetail] = []
    for index, record in enumerate(parsed.records):
        is_valid, field_errors = validator(record)
        if is_valid:
            valid_records.append(record)
            continue
        rejected.extend(field_invalid(field_name, message, index) for field_name, message in field_errors)

    if not valid_records:
        log_json(
            level='warning',
            message='Tutti i record rifiutati dalla validazione',
            correlation_id=correlation_id,
            stage='validate',
            parser=parser.name,
            rows_total=len(parsed.records),
            rows_valid=0,
            rows_rejected=len(parsed.records),
            elapsed_ms=_elapsed_ms(start_time),
            decision='error',
        )
        return Outcome.fail(*rejected)

    stored = await store.insert_batch(valid_records)
    if stored.is_error:
        log_json(
            level='error',
            message='Salvataggio fallito',
            correlation_id=correlation_id,
            stage='store',
            parser=parser.name,
            rows_total=len(parsed.records),
            rows_valid=len(valid_records),
            elapsed_ms=_elapsed_ms(start_time),
            decision='error',
        )
        return Outcome.fail(*stored.errors)

    inserted = stored.value
    report = IngestReport(
        parser=parser.name,
        inserted=inserted,
        rows_parsed=len(parsed.records),
        rows_valid=len(valid_records),
        rows_rejected=len(parsed.records) - len(valid_records),
        duplicates_skipped=len(valid_records) - len(inserted),
        rejected=rejected,
        skipped_rows=list(parsed.skipped),
    )

    log_json(
        level='info',
        message='Ingest completato',
        correlation_id=correlation_id,
        stage='store',
        parser=parser.name,
        rows_total=report.rows_parsed,
        rows_valid=report.rows_valid,
        rows_rejected=report.rows_rejected,
        rows_inserted=len(inserted),
        elapsed_ms=_elapsed_ms(start_time),
        decision='save',
        duplicates_skipped=report.duplicates_skipped,
        parse_mode=parsed.mode,
    )
    return Outcome.ok(report)


class UpdateEmployeeRequest(BaseModel):
    """Body PUT: campi assenti o vuoti lasciano invariato il valore salvato."""
    name: Optional[str] = None
    email: Optional[str] = None
    tel: Optional[str] = None
    phone: Optional[str] = None
    joined: Optional[str] = None


def _pick(new_value: Optional[str], current: str) -> str:
    if new_value is None or not new_value.strip():
        return current
    return new_value.strip()


async def update_employee(
    store: EmployeeStore,
    current_name: str,
    request: UpdateEmployeeRequest,
    validator: Validator = validate_employee,
) -> Outcome:
    """
    Aggiorna i campi base del primo dipendente con nome current_name.

    Returns:
        Outcome con il record aggiornato, oppure NotFound / ValidationFailed /
        errori di campo / DuplicateAfterUpdate / StorageFailed
    """
    found = await store.read_by_name(current_name)
    if found.is_error:
        return Outcome.fail(*found.errors)
    existing = found.value
    if existing is None:
        logger.info(f"[PIPELINE] Update: employee not found: {current_name!r}")
        return Outcome.fail(not_found(current_name))

    joined = existing.joined
    if request.joined is not None and request.joined.strip():
        parsed_joined = parse_joined_date(request.joined)
        if parsed_joined is None:
            return Outcome.fail(validation_failed(
                f"Formato data non valido: '{request.joined}' (yyyy-MM-dd, yyyy.MM.dd, yyyy/MM/dd)"
            ))
        joined = parsed_joined

    phone_value = request.tel if request.tel is not None and request.tel.strip() else request.phone
    updated = replace(
        existing,
        name=_pick(request.name, existing.name),
        email=_pick(request.email, existing.email),
        phone=_pick(phone_value, existing.phone),
        joined=joined,
    )

    is_valid, field_errors = validator(updated)
    if not is_valid:
        return Outcome.fail(*(field_invalid(field_name, message) for field_name, message in field_errors))

    result = await store.update_by_hash(compute_hash(existing), updated)
    if not result.is_error:
        log_json(
            level='info',
            message='Dipendente aggiornato',
            stage='update',
            decision='save',
            employee=updated.name,
        )
    return result
