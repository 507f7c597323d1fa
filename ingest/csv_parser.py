"""
CSV Parser per contatti dipendenti.

Due modalità:
- header: la prima riga contiene almeno un nome campo noto (name, email,
  tel/phone, joined) e le righe successive sono mappate per posizione;
- euristica: nessun header, il primo campo è il nome e gli altri token sono
  classificati (email / data / telefono) da un piccolo motore di regole.
"""
import logging
import string
from typing import Callable, Dict, List, Optional, Tuple

from core.errors import parse_failed
from ingest.normalization import canonical_field, parse_joined_date
from ingest.types import ZERO_DATE, EmployeeRecord, ParseResult, SkippedRow

logger = logging.getLogger(__name__)

_PHONE_CHARS = set(string.digits + "-+")


def _looks_like_email(token: str) -> bool:
    return "@" in token


def _looks_like_date(token: str) -> bool:
    return parse_joined_date(token) is not None


def _looks_like_phone(token: str) -> bool:
    return bool(token) and all(c in _PHONE_CHARS for c in token)


# Regole euristiche, applicate in ordine a ogni token: la prima che
# corrisponde assegna il tipo. Per ogni tipo vince il primo token trovato.
TOKEN_RULES: Tuple[Tuple[str, Callable[[str], bool]], ...] = (
    ("email", _looks_like_email),
    ("joined", _looks_like_date),
    ("phone", _looks_like_phone),
)


def classify_tokens(tokens: List[str]) -> Dict[str, str]:
    """
    Classifica token liberi in email / joined / phone.

    Returns:
        Dict tipo -> primo token corrispondente
    """
    found: Dict[str, str] = {}
    for token in tokens:
        for kind, predicate in TOKEN_RULES:
            if predicate(token):
                found.setdefault(kind, token)
                break
    return found


def split_lines(content: str) -> List[str]:
    """Righe non vuote, con spazi rimossi ai bordi."""
    return [line.strip() for line in content.split("\n") if line.strip()]


def has_known_header(first_line: str) -> bool:
    """True se la prima riga contiene almeno un nome campo noto."""
    return any(canonical_field(part) for part in first_line.split(","))


class CsvEmployeeParser:
    """Parser CSV (con header o euristico)."""

    name = "csv"

    def can_parse(self, content_type: Optional[str], file_extension: Optional[str]) -> bool:
        if file_extension and file_extension.lower() == ".csv":
            return True
        if not content_type:
            return False
        content_type = content_type.lower()
        return "csv" in content_type or "text/plain" in content_type

    def extract(self, content: str) -> ParseResult:
        """
        Estrae i record da testo CSV.

        Le righe malformate vengono scartate (diagnostica in ParseResult.skipped);
        solo un errore inatteso fa fallire l'intero payload con ParseFailed.
        """
        try:
            logger.debug(f"[CSV_PARSER] Parsing started: content_length={len(content)}")
            lines = split_lines(content)
            if not lines:
                return ParseResult(mode="empty")

            if has_known_header(lines[0]):
                result = self._parse_with_header(lines)
            else:
                result = self._parse_heuristic(lines)

            logger.info(
                f"[CSV_PARSER] CSV parsed ({result.mode}): {len(result.records)} records, "
                f"{len(result.skipped)} rows skipped"
            )
            return result

        except Exception as e:
            logger.error(f"[CSV_PARSER] Error parsing CSV: {e}", exc_info=True)
            return ParseResult(error=parse_failed("CSV", str(e)))

    def _parse_with_header(self, lines: List[str]) -> ParseResult:
        headers = [part.strip() for part in lines[0].split(",")]
        result = ParseResult(mode="header")

        for line_no, line in enumerate(lines[1:], start=2):
            values = [part.strip() for part in line.split(",")]
            if sum(1 for v in values if v) < 2:
                result.skipped.append(SkippedRow(line_no, "meno di 2 valori"))
                continue

            fields: Dict[str, str] = {}
            extra: Dict[str, str] = {}
            for header, value in zip(headers, values):
                if not value or not header:
                    continue
                canonical = canonical_field(header)
                if canonical:
                    fields[canonical] = value
                else:
                    extra[header] = value

            missing = [f for f in ("name", "email", "phone") if not fields.get(f)]
            if missing:
                logger.debug(f"[CSV_PARSER] Row {line_no} skipped: missing {missing}")
                result.skipped.append(SkippedRow(line_no, f"campi obbligatori mancanti: {', '.join(missing)}"))
                continue

            result.records.append(EmployeeRecord(
                name=fields["name"],
                email=fields["email"],
                phone=fields["phone"],
                joined=parse_joined_date(fields.get("joined")) or ZERO_DATE,
                extra=extra,
            ))

        return result

    def _parse_heuristic(self, lines: List[str]) -> ParseResult:
        result = ParseResult(mode="heuristic")

        for line_no, line in enumerate(lines, start=1):
            parts = [p.strip() for p in line.split(",") if p.strip()]
            if len(parts) < 2:
                result.skipped.append(SkippedRow(line_no, "meno di 2 valori"))
                continue

            tokens = [token for part in parts[1:] for token in part.split()]
            found = classify_tokens(tokens)

            if "email" not in found or "phone" not in found:
                logger.debug(f"[CSV_PARSER] Row {line_no} skipped: email/phone not found")
                result.skipped.append(SkippedRow(line_no, "email o telefono non trovati"))
                continue

            joined = parse_joined_date(found["joined"]) if "joined" in found else None
            result.records.append(EmployeeRecord(
                name=parts[0],
                email=found["email"],
                phone=found["phone"],
                joined=joined or ZERO_DATE,
            ))

        return result
