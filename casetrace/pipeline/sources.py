"""Read interfaces consumed by the engine, plus in-memory implementations.

The resolver and pipeline receive these as constructor arguments and
never reach for a global client. Implementations must tolerate many
concurrent readers; the engine adds no locking of its own.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

from casetrace.pipeline.models import CaseSummary, IdentityKey, PersonRecord, Role

logger = logging.getLogger(__name__)


class RosterSource(ABC):
    """Access to the accused and bailer rosters."""

    @abstractmethod
    async def fetch_roster(self, role: Role) -> list[PersonRecord]:
        """Return every person-record in the roster for ``role``, in roster order."""
        ...

    @abstractmethod
    async def fetch_matches(
        self, role: Role, identity: IdentityKey, exclude_case_id: Any,
    ) -> list[PersonRecord]:
        """Return records in ``role``'s roster sharing ``identity``, outside ``exclude_case_id``.

        A record matches if its mobile equals the given mobile or its
        national-ID equals the given national-ID (whichever are present).
        Results keep roster order.
        """
        ...


class CaseDirectory(ABC):
    """Lookup from case id to case summary."""

    @abstractmethod
    async def resolve_cases(self, case_ids: set) -> dict[Any, CaseSummary]:
        """Return summaries for the ids it can resolve; unknown ids are simply absent."""
        ...

    @abstractmethod
    async def list_cases(self) -> list[CaseSummary]:
        """Return every case in the directory, whether or not a roster references it."""
        ...


# ═══════════════════════════════════════════════════
# IN-MEMORY IMPLEMENTATIONS
# ═══════════════════════════════════════════════════

class InMemoryRosterSource(RosterSource):
    """Roster source over two plain lists, used for local runs and tests."""

    def __init__(
        self,
        accused: Iterable[PersonRecord] = (),
        bailers: Iterable[PersonRecord] = (),
    ):
        self._rosters: dict[Role, list[PersonRecord]] = {
            Role.ACCUSED: list(accused),
            Role.BAILER: list(bailers),
        }
        for role, roster in self._rosters.items():
            for rec in roster:
                if rec.role is not role:
                    raise ValueError(
                        f"Record {rec.id!r} has role {rec.role.value} but was "
                        f"placed in the {role.value} roster"
                    )

    async def fetch_roster(self, role: Role) -> list[PersonRecord]:
        return list(self._rosters[role])

    async def fetch_matches(
        self, role: Role, identity: IdentityKey, exclude_case_id: Any,
    ) -> list[PersonRecord]:
        if not identity.is_matchable:
            return []
        return [
            rec for rec in self._rosters[role]
            if rec.case_id != exclude_case_id and identity.matches(rec.identity)
        ]


class InMemoryCaseDirectory(CaseDirectory):
    """Case directory over a list of summaries."""

    def __init__(self, cases: Iterable[CaseSummary] = ()):
        self._cases: dict[Any, CaseSummary] = {c.case_id: c for c in cases}

    async def list_cases(self) -> list[CaseSummary]:
        return list(self._cases.values())

    async def resolve_cases(self, case_ids: set) -> dict[Any, CaseSummary]:
        found = {cid: self._cases[cid] for cid in case_ids if cid in self._cases}
        if len(found) < len(case_ids):
            logger.debug(f"Case directory: {len(case_ids) - len(found)} of "
                         f"{len(case_ids)} case id(s) not found")
        return found
