"""
Validation (Pydantic models) per i contatti dipendenti.

Definisce EmployeeContactModel e la funzione validate_employee usata dalla
pipeline come collaboratore di validazione: record -> (valido, errori campo).
"""
import logging
import re
from datetime import date, timedelta
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator

from core.config import get_config
from ingest.types import ZERO_DATE, EmployeeRecord

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")

FieldErrors = List[Tuple[str, str]]


def _context_value(info: ValidationInfo, key: str, default: Any) -> Any:
    if info.context and key in info.context:
        return info.context[key]
    return default


class EmployeeContactModel(BaseModel):
    """
    Modello Pydantic v2 per un contatto dipendente.

    Le regole parametriche (lunghezza nome, pattern telefono, data di
    riferimento) arrivano dal context di validazione.
    """
    name: str
    email: str
    phone: str
    joined: date

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str, info: ValidationInfo) -> str:
        """Nome obbligatorio, massimo name_max_length caratteri."""
        v = v.strip()
        if not v:
            raise ValueError("Il nome è obbligatorio.")
        max_length = _context_value(info, "name_max_length", 100)
        if len(v) > max_length:
            raise ValueError(f"Il nome non può superare {max_length} caratteri.")
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("L'email è obbligatoria.")
        if not EMAIL_PATTERN.match(v):
            raise ValueError(f"Formato email non valido: '{v}'")
        return v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str, info: ValidationInfo) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Il numero di telefono è obbligatorio.")
        pattern = _context_value(info, "phone_pattern", None)
        if pattern and not re.match(pattern, v):
            raise ValueError(f"Formato telefono non valido: '{v}' (es. 01012345678, 010-1234-5678)")
        return v

    @field_validator('joined')
    @classmethod
    def validate_joined(cls, v: date, info: ValidationInfo) -> date:
        """Data di assunzione valorizzata e non futura (tolleranza un giorno)."""
        if v == ZERO_DATE:
            raise ValueError("Data di assunzione non valida.")
        today = _context_value(info, "today", None) or date.today()
        if v > today + timedelta(days=1):
            raise ValueError("La data di assunzione non può essere nel futuro.")
        return v


def _error_message(error: dict) -> str:
    ctx_error = (error.get("ctx") or {}).get("error")
    return str(ctx_error) if ctx_error is not None else error.get("msg", "valore non valido")


def validate_employee(record: EmployeeRecord, today: Optional[date] = None) -> Tuple[bool, FieldErrors]:
    """
    Valida un record con EmployeeContactModel.

    Args:
        record: Record estratto dal parser
        today: Data di riferimento per il controllo "non futura" (default oggi)

    Returns:
        Tuple (valido, [(campo, messaggio), ...])
    """
    config = get_config()
    context = {
        "name_max_length": config.name_max_length,
        "phone_pattern": config.phone_pattern,
        "today": today,
    }
    try:
        EmployeeContactModel.model_validate(
            {
                "name": record.name,
                "email": record.email,
                "phone": record.phone,
                "joined": record.joined,
            },
            context=context,
        )
    except ValidationError as e:
        errors = [(str(err["loc"][0]) if err.get("loc") else "record", _error_message(err)) for err in e.errors()]
        logger.debug(f"[VALIDATION] Record rifiutato: name={record.name[:30]!r}, errors={errors}")
        return False, errors

    return True, []
