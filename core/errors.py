"""
Catalogo errori del servizio.

Gli errori sono valori (ErrorDetail) restituiti dentro un Outcome, non
eccezioni: parser, store e pipeline li propagano al router che li traduce in
risposte HTTP.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Literal, Optional, TypeVar

T = TypeVar("T")

ErrorKind = Literal["validation", "not_found", "conflict", "failure", "unexpected"]


@dataclass(frozen=True)
class ErrorDetail:
    code: str
    description: str
    kind: ErrorKind = "failure"


@dataclass
class Outcome(Generic[T]):
    """Risultato di un'operazione: valore oppure lista errori."""

    value: Optional[T] = None
    errors: List[ErrorDetail] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return bool(self.errors)

    @property
    def first_error(self) -> Optional[ErrorDetail]:
        return self.errors[0] if self.errors else None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, *errors: ErrorDetail) -> "Outcome[T]":
        return cls(errors=list(errors))


def no_parser_found() -> ErrorDetail:
    return ErrorDetail(
        "Employee.NoParserFound",
        "Formato dati non supportato. Usare CSV o JSON.",
        "failure",
    )


def parse_failed(fmt: str, cause: str = "") -> ErrorDetail:
    description = f"Parsing {fmt} fallito. Verificare il formato dei dati."
    if cause:
        description = f"{description} ({cause})"
    return ErrorDetail("Employee.ParseFailed", description, "failure")


def no_valid_data() -> ErrorDetail:
    return ErrorDetail(
        "Employee.NoValidData",
        "Nessun dipendente valido trovato. Verificare i campi obbligatori (name, email, tel).",
        "validation",
    )


def validation_failed(details: str) -> ErrorDetail:
    return ErrorDetail("Employee.ValidationFailed", details, "validation")


def field_invalid(field_name: str, message: str, index: Optional[int] = None) -> ErrorDetail:
    """Errore di validazione su un campo: codice Employee[i].campo o Employee.campo."""
    prefix = f"Employee[{index}]" if index is not None else "Employee"
    return ErrorDetail(f"{prefix}.{field_name}", message, "validation")


def storage_failed(cause: str = "") -> ErrorDetail:
    description = "Errore durante il salvataggio dei dati."
    if cause:
        description = f"{description} ({cause})"
    return ErrorDetail("Employee.StorageFailed", description, "unexpected")


def duplicate_after_update() -> ErrorDetail:
    return ErrorDetail(
        "Employee.DuplicateAfterUpdate",
        "Esiste già un dipendente con gli stessi dati dopo la modifica.",
        "conflict",
    )


def not_found(name: str) -> ErrorDetail:
    return ErrorDetail(
        "Employee.NotFound",
        f"Nessun dipendente trovato con nome '{name}'.",
        "not_found",
    )


def no_file_uploaded() -> ErrorDetail:
    return ErrorDetail(
        "Employee.NoFileUploaded",
        "Nessun file caricato oppure file vuoto.",
        "validation",
    )


def empty_body() -> ErrorDetail:
    return ErrorDetail("Employee.EmptyBody", "Il corpo della richiesta è vuoto.", "validation")


def payload_too_large(limit: int) -> ErrorDetail:
    return ErrorDetail(
        "Employee.PayloadTooLarge",
        f"Payload oltre il limite di {limit} byte.",
        "validation",
    )
