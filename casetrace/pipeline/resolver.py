"""Cross-Reference Resolver.

Given a person attached to one case, find every *other* case in which
a person sharing that identity appears, as an accused or as a bailer.

Matching rules::

    record matches  <=>  record.case_id != origin_case_id
                         AND (mobile == given mobile, if given
                              OR national_id == given national_id, if given)

The accused roster is scanned before the bailer roster and history is
deduplicated by case id keeping the first hit, so when one case
matches in both rosters the entry is tagged ``accused``.

Two ways to run it:

  - ``CrossReferenceResolver.resolve()`` queries the sources for one
    record (detail views, fan-out enrichment).
  - ``IdentityIndex`` is built once from both full rosters and answers
    the same question in memory for a whole batch. Both produce the
    same matches in the same order.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Iterable, TypeVar

from casetrace.config import TRACE_ENABLED
from casetrace.pipeline.errors import CrossReferenceError, SourceUnavailable
from casetrace.pipeline.models import (
    CaseHistoryEntry,
    CaseSummary,
    IdentityKey,
    PersonRecord,
    Role,
)
from casetrace.pipeline.sources import CaseDirectory, RosterSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Scan order doubles as the tie-break: earlier roster wins a shared case id.
_SCAN_ORDER = (Role.ACCUSED, Role.BAILER)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


async def guarded(source: str, call: Awaitable[T]) -> T:
    """Await a source call, turning unexpected failures into ``SourceUnavailable``.

    Errors already in the engine's taxonomy pass through untouched, and
    so does ``asyncio.CancelledError`` (it is not an ``Exception``).
    """
    try:
        return await call
    except CrossReferenceError:
        raise
    except Exception as e:
        logger.error(f"{source} failed: {type(e).__name__}: {e}")
        raise SourceUnavailable(source, f"{type(e).__name__}: {e}") from e


def merge_matches(
    matches_by_role: Iterable[tuple[Role, Iterable[Any]]],
    origin_case_id: Any,
) -> list[tuple[Any, Role]]:
    """Merge per-roster case ids into ``(case_id, role)`` pairs, first hit wins.

    ``matches_by_role`` must be given in scan order. The origin case is
    excluded here as well, whatever the source returned.
    """
    seen: set = set()
    merged: list[tuple[Any, Role]] = []
    for role, case_ids in matches_by_role:
        for cid in case_ids:
            if cid == origin_case_id or cid in seen:
                continue
            seen.add(cid)
            merged.append((cid, role))
    return merged


def build_history(
    matches: list[tuple[Any, Role]],
    summaries: dict[Any, CaseSummary],
) -> list[CaseHistoryEntry]:
    """Attach case summaries to matched case ids; unresolvable ids are dropped."""
    history: list[CaseHistoryEntry] = []
    for cid, role in matches:
        summary = summaries.get(cid)
        if summary is None:
            logger.warning(
                f"Data integrity: case {cid!r} matched as {role.value} but has no "
                f"case summary, omitted from history"
            )
            continue
        history.append(CaseHistoryEntry(case=summary, role=role))
    return history


# ═══════════════════════════════════════════════════
# PER-RECORD RESOLVER
# ═══════════════════════════════════════════════════

class CrossReferenceResolver:
    """Resolves the cross-case history of one identity against the live sources."""

    def __init__(self, roster_source: RosterSource, case_directory: CaseDirectory):
        self.roster_source = roster_source
        self.case_directory = case_directory

    async def resolve(self, identity: IdentityKey, origin_case_id: Any) -> list[CaseHistoryEntry]:
        """Return the deduplicated, role-tagged history for ``identity``.

        Raises:
            SourceUnavailable: a roster scan or the directory lookup failed.
        """
        if not identity.is_matchable:
            _trace(f"RESOLVE case={origin_case_id!r}: no mobile or national id, skipped")
            return []

        per_role: list[tuple[Role, list[Any]]] = []
        for role in _SCAN_ORDER:
            records = await guarded(
                f"{role.value} roster",
                self.roster_source.fetch_matches(role, identity, origin_case_id),
            )
            per_role.append((role, [r.case_id for r in records]))

        matches = merge_matches(per_role, origin_case_id)
        if not matches:
            _trace(f"RESOLVE case={origin_case_id!r}: no matches")
            return []

        summaries = await guarded(
            "case directory",
            self.case_directory.resolve_cases({cid for cid, _ in matches}),
        )
        history = build_history(matches, summaries)
        _trace(f"RESOLVE case={origin_case_id!r}: {len(matches)} match(es), "
               f"{len(history)} in history")
        return history


# ═══════════════════════════════════════════════════
# BATCH INDEX
# ═══════════════════════════════════════════════════

class _RosterIndex:
    """Identity lookup over one roster; positions keep roster order."""

    def __init__(self, records: list[PersonRecord]):
        self.case_ids: list[Any] = [r.case_id for r in records]
        self.by_mobile: dict[str, list[int]] = {}
        self.by_national_id: dict[str, list[int]] = {}
        for pos, rec in enumerate(records):
            if rec.identity.mobile is not None:
                self.by_mobile.setdefault(rec.identity.mobile, []).append(pos)
            if rec.identity.national_id is not None:
                self.by_national_id.setdefault(rec.identity.national_id, []).append(pos)

    def matching_case_ids(self, identity: IdentityKey, exclude_case_id: Any) -> list[Any]:
        positions: set[int] = set()
        if identity.mobile is not None:
            positions.update(self.by_mobile.get(identity.mobile, ()))
        if identity.national_id is not None:
            positions.update(self.by_national_id.get(identity.national_id, ()))
        return [
            self.case_ids[pos] for pos in sorted(positions)
            if self.case_ids[pos] != exclude_case_id
        ]


class IdentityIndex:
    """Identity -> case ids index over both rosters, built once per batch."""

    def __init__(self, accused: list[PersonRecord], bailers: list[PersonRecord]):
        self._rosters = {
            Role.ACCUSED: _RosterIndex(accused),
            Role.BAILER: _RosterIndex(bailers),
        }

    def lookup(self, identity: IdentityKey, origin_case_id: Any) -> list[tuple[Any, Role]]:
        """Same matches, in the same order, as ``CrossReferenceResolver.resolve()`` finds."""
        if not identity.is_matchable:
            return []
        return merge_matches(
            ((role, self._rosters[role].matching_case_ids(identity, origin_case_id))
             for role in _SCAN_ORDER),
            origin_case_id,
        )
