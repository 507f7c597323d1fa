"""
Normalizzazione valori per i parser.

Date di assunzione (joined) e nomi campo noti.
"""
import logging
from datetime import date, datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Formati data accettati (yyyy-MM-dd, yyyy.MM.dd, yyyy/MM/dd)
DATE_FORMATS = ("%Y-%m-%d", "%Y.%m.%d", "%Y/%m/%d")

# Nomi campo riconosciuti (case-insensitive) e campo canonico
FIELD_ALIASES = {
    "name": "name",
    "email": "email",
    "tel": "phone",
    "phone": "phone",
    "joined": "joined",
}


def canonical_field(key: Any) -> Optional[str]:
    """
    Ritorna il campo canonico per una chiave/header, None se è un extra field.

    Esempio: "Tel" -> "phone", "EMAIL" -> "email", "dept" -> None
    """
    if key is None:
        return None
    return FIELD_ALIASES.get(str(key).strip().lower())


def parse_joined_date(value: Any) -> Optional[date]:
    """
    Interpreta una data di assunzione in uno dei formati supportati.

    Args:
        value: Valore grezzo (stringa)

    Returns:
        date se il valore rispetta esattamente uno dei formati, None altrimenti
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        # strptime accetta mese/giorno a una cifra: richiediamo il formato pieno
        if parsed.strftime(fmt) == text:
            return parsed.date()
    return None


def format_joined_date(value: date) -> str:
    """Formato canonico di persistenza (yyyy-MM-dd)."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
