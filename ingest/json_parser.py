"""
JSON Parser per contatti dipendenti.

Il payload è un array di oggetti con chiavi case-insensitive; ogni chiave
diversa da name/email/tel/phone/joined diventa un extra field.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

from core.errors import parse_failed
from ingest.normalization import canonical_field, parse_joined_date
from ingest.types import ZERO_DATE, EmployeeRecord, ParseResult, SkippedRow

logger = logging.getLogger(__name__)


def _scalar_text(value: Any) -> Optional[str]:
    """Stringhe e numeri come testo, tutto il resto None."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return json.dumps(value)
    return None


def _leaf_text(value: Any) -> str:
    """Forma testuale di un valore JSON per gli extra field (null -> "")."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _fold_keys(item: Dict[str, Any]) -> Dict[str, Tuple[str, Any]]:
    """Chiave lowercase -> (chiave originale, valore); vince la prima occorrenza."""
    folded: Dict[str, Tuple[str, Any]] = {}
    for key, value in item.items():
        folded.setdefault(key.strip().lower(), (key, value))
    return folded


class JsonEmployeeParser:
    """Parser JSON (array di oggetti)."""

    name = "json"

    def can_parse(self, content_type: Optional[str], file_extension: Optional[str]) -> bool:
        if file_extension and file_extension.lower() == ".json":
            return True
        return bool(content_type) and "json" in content_type.lower()

    def extract(self, content: str) -> ParseResult:
        """
        Estrae i record da testo JSON.

        Il payload deve essere un array di oggetti: errore di sintassi,
        top-level diverso da array o elemento non oggetto fanno fallire
        l'intero payload con ParseFailed. Un null top-level equivale a un
        array vuoto. Oggetti incompleti vengono solo scartati.
        """
        logger.debug(f"[JSON_PARSER] Parsing started: content_length={len(content)}")
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"[JSON_PARSER] Invalid JSON: {e}")
            return ParseResult(error=parse_failed("JSON", str(e)))

        if payload is None:
            return ParseResult(mode="array")
        if not isinstance(payload, list):
            logger.error(f"[JSON_PARSER] Unexpected top-level type: {type(payload).__name__}")
            return ParseResult(error=parse_failed("JSON", "atteso un array di oggetti"))

        bad_index = next((i for i, item in enumerate(payload) if not isinstance(item, dict)), None)
        if bad_index is not None:
            logger.error(f"[JSON_PARSER] Item {bad_index} is not an object")
            return ParseResult(error=parse_failed("JSON", f"elemento {bad_index} non è un oggetto"))

        result = ParseResult(mode="array")
        try:
            for index, raw_item in enumerate(payload):
                record = self._build_record(_fold_keys(raw_item))
                if record is None:
                    logger.debug(f"[JSON_PARSER] Item {index} skipped: name/email missing")
                    result.skipped.append(SkippedRow(index, "name o email mancanti"))
                    continue
                result.records.append(record)

        except Exception as e:
            logger.error(f"[JSON_PARSER] Error parsing JSON items: {e}", exc_info=True)
            return ParseResult(error=parse_failed("JSON", str(e)))

        logger.info(
            f"[JSON_PARSER] JSON parsed: {len(result.records)} records, {len(result.skipped)} items skipped"
        )
        return result

    def _build_record(self, item: Dict[str, Tuple[str, Any]]) -> Optional[EmployeeRecord]:
        def get_text(key: str) -> Optional[str]:
            entry = item.get(key)
            return _scalar_text(entry[1]) if entry else None

        name = get_text("name")
        email = get_text("email")
        if not name or not name.strip() or not email or not email.strip():
            return None

        phone = get_text("tel")
        if phone is None:
            phone = get_text("phone") or ""

        extra: Dict[str, str] = {}
        for original_key, value in item.values():
            if canonical_field(original_key):
                continue
            extra[original_key] = _leaf_text(value)

        return EmployeeRecord(
            name=name.strip(),
            email=email.strip(),
            phone=phone.strip(),
            joined=parse_joined_date(get_text("joined")) or ZERO_DATE,
            extra=extra,
        )
