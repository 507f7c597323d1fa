from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from core.errors import ErrorDetail

# Data "zero": joined mancante o non interpretabile
ZERO_DATE = date.min


@dataclass
class EmployeeRecord:
    name: str
    email: str
    phone: str
    joined: date = ZERO_DATE
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "email": self.email,
            "tel": self.phone,
            "joined": self.joined.isoformat(),
            "extra": dict(self.extra),
        }


@dataclass
class SkippedRow:
    line: int
    reason: str


@dataclass
class ParseResult:
    records: List[EmployeeRecord] = field(default_factory=list)
    skipped: List[SkippedRow] = field(default_factory=list)
    error: Optional[ErrorDetail] = None
    mode: str = ""


@dataclass
class IngestReport:
    parser: str
    inserted: List[EmployeeRecord]
    rows_parsed: int
    rows_valid: int
    rows_rejected: int
    duplicates_skipped: int
    rejected: List[ErrorDetail] = field(default_factory=list)
    skipped_rows: List[SkippedRow] = field(default_factory=list)
