"""Data contracts for the cross-case identity engine.

All of these are read projections of records owned by the external
case-management system. Nothing here has a write path: history and
flags are recomputed on every call and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Which roster a person-record lives in."""
    ACCUSED = "accused"
    BAILER = "bailer"


def _key_or_none(value: Any) -> str | None:
    # Empty form fields are stored as null; no other normalisation.
    if value is None:
        return None
    value = str(value)
    return value if value != "" else None


# ═══════════════════════════════════════════════════
# IDENTITY
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class IdentityKey:
    """Optional mobile number and optional national-ID for one person-record.

    Matching is exact string equality, OR-ed across whichever keys are
    present. A key with neither field can never match anything.
    """
    mobile: str | None = None
    national_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "mobile", _key_or_none(self.mobile))
        object.__setattr__(self, "national_id", _key_or_none(self.national_id))

    @property
    def is_matchable(self) -> bool:
        return self.mobile is not None or self.national_id is not None

    def matches(self, other: IdentityKey) -> bool:
        """True if either supplied key equals the same key on ``other``."""
        if self.mobile is not None and self.mobile == other.mobile:
            return True
        if self.national_id is not None and self.national_id == other.national_id:
            return True
        return False

    def to_dict(self) -> dict:
        return {"mobile": self.mobile, "national_id": self.national_id}


# ═══════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class PersonRecord:
    """An accused-record or bailer-record attached to one case."""
    id: Any                       # unique within its roster
    case_id: Any                  # owning case (fir_id)
    identity: IdentityKey
    role: Role                    # fixed by the roster the record came from
    name: str = ""
    father_name: str = ""
    age: int | None = None
    gender: str = ""
    address: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "role": self.role.value,
            "mobile": self.identity.mobile,
            "national_id": self.identity.national_id,
            "name": self.name,
            "father_name": self.father_name,
            "age": self.age,
            "gender": self.gender,
            "address": self.address,
        }


@dataclass(frozen=True)
class CaseSummary:
    """Read projection of one case from the Case Directory."""
    case_id: Any
    case_number: str = ""
    district: str = ""
    station: str = ""
    status: str = ""
    incident_date: str = ""

    def to_dict(self) -> dict:
        return {
            "case_id": self.case_id,
            "case_number": self.case_number,
            "district": self.district,
            "station": self.station,
            "status": self.status,
            "incident_date": self.incident_date,
        }


@dataclass(frozen=True)
class CaseHistoryEntry:
    """One other case in which a person sharing the identity appears."""
    case: CaseSummary
    role: Role                    # roster the match was found in

    @property
    def case_id(self) -> Any:
        return self.case.case_id

    def to_dict(self) -> dict:
        return {**self.case.to_dict(), "role": self.role.value}


@dataclass(frozen=True)
class EnrichedPersonRecord:
    """A person-record plus its cross-case history and derived flags."""
    record: PersonRecord
    history: tuple[CaseHistoryEntry, ...] = field(default_factory=tuple)

    @property
    def occurrence_count(self) -> int:
        return len(self.history) + 1

    @property
    def was_previously_accused(self) -> bool:
        if self.record.role is not Role.BAILER:
            return False
        return any(h.role is Role.ACCUSED for h in self.history)

    def to_dict(self) -> dict:
        return {
            **self.record.to_dict(),
            "history": [h.to_dict() for h in self.history],
            "occurrence_count": self.occurrence_count,
            "was_previously_accused": self.was_previously_accused,
        }


# ═══════════════════════════════════════════════════
# STATISTICS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class Stats:
    """Dashboard rollup of one enriched roster."""
    role: Role
    total: int = 0
    repeat_count: int = 0
    suspicious_count: int = 0     # always 0 for the accused roster
    matchable_count: int = 0      # records carrying a mobile or national id

    def to_dict(self) -> dict:
        d = {
            "role": self.role.value,
            "total": self.total,
            "repeat_count": self.repeat_count,
            "matchable_count": self.matchable_count,
        }
        # Only bailers can be "suspicious"; never report it for accused.
        if self.role is Role.BAILER:
            d["suspicious_count"] = self.suspicious_count
        return d


@dataclass(frozen=True)
class CaseStats:
    """Case status rollup shown on the reports dashboard."""
    total: int = 0
    open: int = 0
    closed: int = 0
    disposed: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "open": self.open,
            "closed": self.closed,
            "disposed": self.disposed,
        }
