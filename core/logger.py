"""
Logging strutturato per employee-contacts.

Unifica logging colorato (colorlog) e structured logging con supporto JSON.
Il contesto richiesta (correlation_id) viaggia in una ContextVar, quindi
ogni richiesta concorrente mantiene il proprio.
"""
import logging
import json
import uuid
import sys
import contextvars
from typing import Optional, Dict, Any
from datetime import datetime, timezone

import colorlog

# Context variables per tracciare richieste
_request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar('request_context', default={})


def setup_colored_logging(service_name: str = "employees", level: str = "INFO"):
    """
    Configura logging colorato con colorlog.

    Args:
        service_name: Nome del servizio per identificare log
        level: Livello del root logger
    """
    # Handler per stdout con colori
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    formatter = colorlog.ColoredFormatter(
        f'%(log_color)s[%(levelname)s]%(reset)s %(cyan)s{service_name}%(reset)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        reset=True,
        log_colors={
            'DEBUG': 'white',
            'INFO': 'blue',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    handler.setFormatter(formatter)

    # Configura root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # Rimuovi handler esistenti
    root_logger.handlers = []
    root_logger.addHandler(handler)

    # Riduci verbosità librerie
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    return root_logger


def set_request_context(correlation_id: Optional[str] = None, **fields: Any) -> str:
    """
    Imposta contesto richiesta per logging strutturato.

    Args:
        correlation_id: ID correlazione (genera se None)
        **fields: Campi aggiuntivi (es. source="upload")

    Returns:
        correlation_id effettivo
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context = {k: v for k, v in fields.items() if v is not None}
    context["correlation_id"] = correlation_id

    _request_context.set(context)
    return correlation_id


def get_request_context() -> Dict[str, Any]:
    """Recupera contesto richiesta corrente."""
    return _request_context.get({})


def get_correlation_id() -> Optional[str]:
    """Recupera correlation ID dal contesto, None se assente."""
    return get_request_context().get("correlation_id")


def log_with_context(
    level: str,
    message: str,
    correlation_id: Optional[str] = None,
    logger_name: Optional[str] = None,
    **extra
):
    """
    Log con contesto strutturato (correlation_id).

    Args:
        level: 'info', 'warning', 'error', 'debug'
        message: Messaggio da loggare
        correlation_id: ID correlazione (usa contesto se None)
        logger_name: Logger da usare (default: questo modulo)
        **extra: kwargs passati al logger (es. exc_info=True)
    """
    if correlation_id is None:
        correlation_id = get_correlation_id()

    log_message = message
    if correlation_id:
        log_message = f"[correlation_id={correlation_id}] {log_message}"

    logger = logging.getLogger(logger_name or __name__)
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(log_message, **extra)


def log_json(
    level: str,
    message: str,
    correlation_id: Optional[str] = None,
    stage: Optional[str] = None,
    parser: Optional[str] = None,
    rows_total: Optional[int] = None,
    rows_valid: Optional[int] = None,
    rows_rejected: Optional[int] = None,
    rows_inserted: Optional[int] = None,
    elapsed_ms: Optional[float] = None,
    decision: Optional[str] = None,
    **extra
):
    """
    Log strutturato in formato JSON line (per produzione).

    Args:
        level: 'info', 'warning', 'error', 'debug'
        message: Messaggio da loggare
        correlation_id: ID correlazione (usa contesto se None)
        stage: Fase pipeline (dispatch, parse, validate, store)
        parser: Parser selezionato (csv, json)
        rows_total: Numero record estratti
        rows_valid: Numero record validi
        rows_rejected: Numero record rifiutati dalla validazione
        rows_inserted: Numero record effettivamente inseriti
        elapsed_ms: Tempo elaborazione in millisecondi
        decision: Esito (save/error)
        **extra: Campi aggiuntivi
    """
    ctx = get_request_context()
    if correlation_id is None:
        correlation_id = ctx.get("correlation_id")

    log_data: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level.upper(),
        "message": message,
    }

    if correlation_id:
        log_data["correlation_id"] = correlation_id
    if stage:
        log_data["stage"] = stage
    if parser:
        log_data["parser"] = parser

    # Metriche
    if rows_total is not None:
        log_data["rows_total"] = rows_total
    if rows_valid is not None:
        log_data["rows_valid"] = rows_valid
    if rows_rejected is not None:
        log_data["rows_rejected"] = rows_rejected
    if rows_inserted is not None:
        log_data["rows_inserted"] = rows_inserted

    if elapsed_ms is not None:
        log_data["elapsed_ms"] = elapsed_ms
    if decision:
        log_data["decision"] = decision

    log_data.update(extra)

    logger = logging.getLogger(__name__)
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(json.dumps(log_data, ensure_ascii=False, default=str))
