"""
Gate - Selezione parser per formato.

Determina il parser in base ai metadati dichiarati (content-type, estensione
file); se nessun parser li riconosce, annusa il contenuto (primo carattere
strutturale) e riprova con il tipo dedotto.
"""
import logging
import os
from typing import Optional, Sequence, Tuple

import chardet

from core.errors import Outcome, no_parser_found
from ingest.csv_parser import CsvEmployeeParser
from ingest.json_parser import JsonEmployeeParser

logger = logging.getLogger(__name__)

# Ordine di registrazione = priorità a parità di match
DEFAULT_PARSERS = (CsvEmployeeParser(), JsonEmployeeParser())

# Tentativi di decodifica: utf-8-sig → utf-8 → cp949 → latin-1
ENCODING_CANDIDATES = ('utf-8-sig', 'utf-8', 'cp949', 'latin-1')


def sniff_content_type(content: str) -> str:
    """Deduce il content-type dal primo carattere non vuoto."""
    head = content.lstrip()[:1]
    return "application/json" if head in ("[", "{") else "text/csv"


def select_parser(
    content: str,
    content_type: Optional[str] = None,
    file_extension: Optional[str] = None,
    parsers: Sequence = DEFAULT_PARSERS,
) -> Outcome:
    """
    Seleziona il parser per il payload.

    Args:
        content: Payload testuale
        content_type: Content-type dichiarato (opzionale)
        file_extension: Estensione file con punto, es. ".csv" (opzionale)
        parsers: Parser candidati, in ordine di priorità

    Returns:
        Outcome con il parser, oppure errore NoParserFound
    """
    for parser in parsers:
        if parser.can_parse(content_type, file_extension):
            logger.debug(f"[GATE] Parser selected from metadata: {parser.name}")
            return Outcome.ok(parser)

    inferred_type = sniff_content_type(content)
    logger.debug(
        f"[GATE] No parser for content_type={content_type!r}, ext={file_extension!r}; "
        f"sniffed {inferred_type}"
    )
    for parser in parsers:
        if parser.can_parse(inferred_type, None):
            logger.debug(f"[GATE] Parser selected from sniffing: {parser.name}")
            return Outcome.ok(parser)

    logger.warning(f"[GATE] No parser found: content_type={content_type!r}, ext={file_extension!r}")
    return Outcome.fail(no_parser_found())


def file_extension_of(file_name: Optional[str]) -> Optional[str]:
    """Estensione lowercase con punto (".csv"), None se assente."""
    if not file_name:
        return None
    ext = os.path.splitext(file_name)[1].lower()
    return ext or None


def decode_content(file_content: bytes) -> Tuple[str, str]:
    """
    Decodifica un payload binario provando gli encoding candidati.

    Args:
        file_content: Contenuto file (bytes)

    Returns:
        Tuple (testo, encoding usato)
    """
    detected = chardet.detect(file_content[:10000])  # Prime 10KB
    confidence = detected.get('confidence') or 0.0

    for enc in ENCODING_CANDIDATES:
        try:
            text = file_content.decode(enc)
        except (UnicodeDecodeError, LookupError):
            continue
        logger.debug(
            f"[GATE] Encoding: {enc} (chardet={detected.get('encoding')}, confidence={confidence:.2f})"
        )
        return text, enc

    # latin-1 decodifica qualsiasi sequenza: non si arriva qui
    return file_content.decode('utf-8', errors='replace'), 'utf-8'
