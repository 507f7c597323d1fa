"""
Router per contatti dipendenti.

Endpoint:
- GET /api/employee: Lista paginata (ordine di inserimento)
- GET /api/employee/{name}: Dipendente per nome (case-insensitive)
- POST /api/employee: Upload CSV/JSON (multipart o body raw)
- PUT /api/employee/{name}: Aggiornamento campi base
"""
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from core.employee_store import EmployeeStore
from core.errors import ErrorDetail, empty_body, no_file_uploaded, not_found, payload_too_large
from core.logger import log_with_context
from ingest.gate import decode_content, file_extension_of
from ingest.pipeline import UpdateEmployeeRequest, process_content, update_employee

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/employee", tags=["employees"])

STATUS_BY_KIND = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "failure": 400,
    "unexpected": 500,
}


def error_response(errors: List[ErrorDetail], status_code: Optional[int] = None) -> JSONResponse:
    """Rende gli errori come {"errors": [{code, description}]}; status dal primo errore."""
    if status_code is None:
        status_code = STATUS_BY_KIND.get(errors[0].kind, 500) if errors else 500
    return JSONResponse(
        status_code=status_code,
        content={"errors": [{"code": e.code, "description": e.description} for e in errors]},
    )


def _store(request: Request) -> EmployeeStore:
    return request.app.state.store


def _clamp_page(page: int, page_size: Optional[int], default_size: int, max_size: int):
    page = page if page >= 1 else 1
    if page_size is None or page_size < 1:
        page_size = default_size
    return page, min(page_size, max_size)


@router.get("")
async def list_employees(
    request: Request,
    page: int = Query(1),
    page_size: Optional[int] = Query(None),
):
    """Lista paginata; page/page_size fuori range vengono riportati nei limiti."""
    config = request.app.state.config
    page, page_size = _clamp_page(page, page_size, config.default_page_size, config.max_page_size)

    outcome = await _store(request).read_page(page, page_size)
    if outcome.is_error:
        return error_response(outcome.errors)

    items, total = outcome.value
    return {
        "page": page,
        "page_size": page_size,
        "total_count": total,
        "total_pages": math.ceil(total / page_size) if total else 0,
        "data": [item.to_dict() for item in items],
    }


@router.get("/{name}")
async def get_employee(request: Request, name: str):
    """Primo dipendente (per inserimento) con nome uguale, case-insensitive."""
    outcome = await _store(request).read_by_name(name)
    if outcome.is_error:
        return error_response(outcome.errors)
    if outcome.value is None:
        return error_response([not_found(name)])
    return outcome.value.to_dict()


async def _read_upload(request: Request, max_bytes: int):
    """
    Legge il payload dalla richiesta.

    Returns:
        Tuple (payload bytes, content_type, estensione, errore, status)
    """
    declared_length = request.headers.get("content-length")
    if declared_length and declared_length.isdigit() and int(declared_length) > max_bytes:
        return None, None, None, payload_too_large(max_bytes), 413

    content_type = request.headers.get("content-type") or ""
    if content_type.lower().startswith("multipart/form-data"):
        form = await request.form()
        upload = next((value for value in form.values() if isinstance(value, UploadFile)), None)
        if upload is None:
            return None, None, None, no_file_uploaded(), None
        payload = await upload.read()
        if len(payload) > max_bytes:
            return None, None, None, payload_too_large(max_bytes), 413
        if not payload:
            return None, None, None, no_file_uploaded(), None
        return payload, upload.content_type, file_extension_of(upload.filename), None, None

    payload = await request.body()
    if len(payload) > max_bytes:
        return None, None, None, payload_too_large(max_bytes), 413
    if not payload.strip():
        return None, None, None, empty_body(), None
    return payload, content_type or None, None, None, None


@router.post("")
async def upload_employees(request: Request):
    """
    Importa dipendenti da file (multipart, primo file) o dal body della richiesta.

    Risposta 201 con i soli record inseriti; i duplicati sono contati, non errori.
    """
    config = request.app.state.config
    payload, content_type, file_extension, error, status_code = await _read_upload(
        request, config.max_upload_bytes
    )
    if error is not None:
        log_with_context("warning", f"[EMPLOYEES] Upload rejected: {error.code}", logger_name=__name__)
        return error_response([error], status_code)

    text, encoding = decode_content(payload)
    if not text.strip():
        return error_response([empty_body()])

    log_with_context(
        "info",
        f"[EMPLOYEES] Upload received: {len(payload)} bytes, content_type={content_type!r}, "
        f"ext={file_extension!r}, encoding={encoding}",
        logger_name=__name__,
    )

    outcome = await process_content(_store(request), text, content_type, file_extension)
    if outcome.is_error:
        return error_response(outcome.errors)

    report = outcome.value
    return JSONResponse(
        status_code=201,
        content={
            "count": len(report.inserted),
            "data": [record.to_dict() for record in report.inserted],
            "rejected": [{"code": e.code, "description": e.description} for e in report.rejected],
            "duplicates_skipped": report.duplicates_skipped,
        },
    )


@router.put("/{name}")
async def put_employee(request: Request, name: str, body: UpdateEmployeeRequest):
    """Aggiorna i campi base; campi omessi o vuoti restano invariati."""
    outcome = await update_employee(_store(request), name, body)
    if outcome.is_error:
        return error_response(outcome.errors)
    return outcome.value.to_dict()
