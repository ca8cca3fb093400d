"""Dashboard rollups over enriched rosters and case summaries."""

from __future__ import annotations

from typing import Iterable

from casetrace.config import CASE_STATUS_CLOSED, CASE_STATUS_DISPOSED, CASE_STATUS_OPEN
from casetrace.pipeline.models import CaseStats, CaseSummary, EnrichedPersonRecord, Role, Stats


def summarize(enriched: Iterable[EnrichedPersonRecord], own_role: Role | None = None) -> Stats:
    """Fold an enriched roster into total / repeat / suspicious / matchable counts.

    ``matchable_count`` is how many records carry an identifier at all;
    the rest can never be linked to another case.

    ``own_role`` defaults to the role of the records themselves; an
    empty roster with no role given is reported as accused.
    """
    records = list(enriched)
    if own_role is None:
        own_role = records[0].record.role if records else Role.ACCUSED
    return Stats(
        role=own_role,
        total=len(records),
        repeat_count=sum(1 for e in records if e.occurrence_count > 1),
        suspicious_count=sum(1 for e in records if e.was_previously_accused),
        matchable_count=sum(1 for e in records if e.record.identity.is_matchable),
    )


def summarize_cases(cases: Iterable[CaseSummary]) -> CaseStats:
    """Count cases by status group (open / closed / disposed)."""
    total = open_ = closed = disposed = 0
    for case in cases:
        total += 1
        if case.status in CASE_STATUS_OPEN:
            open_ += 1
        elif case.status in CASE_STATUS_CLOSED:
            closed += 1
        elif case.status in CASE_STATUS_DISPOSED:
            disposed += 1
    return CaseStats(total=total, open=open_, closed=closed, disposed=disposed)
