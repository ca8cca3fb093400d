"""Roster Enrichment Pipeline.

Applies the cross-reference resolver to every record of a roster,
attaches the history and derived flags, and orders the result so
repeat offenders and repeat bailers surface first.

Strategies
──────────
``indexed`` (default)
    Fetch both full rosters once, build an ``IdentityIndex`` and resolve
    every referenced case id with a single directory call.
``fanout``
    Run ``CrossReferenceResolver.resolve()`` per record, at most
    ``RESOLVE_CONCURRENCY`` at a time.

Either way the output equals the sequential reference: stable sort on
``occurrence_count`` descending, ties in roster order. The whole call
runs under one deadline; when it fires, in-flight lookups are
cancelled and ``Cancelled`` is raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from casetrace.config import ENRICH_STRATEGIES, ENRICH_STRATEGY, ENRICH_TIMEOUT, RESOLVE_CONCURRENCY
from casetrace.pipeline.errors import Cancelled
from casetrace.pipeline.models import CaseHistoryEntry, EnrichedPersonRecord, PersonRecord, Role
from casetrace.pipeline.resolver import (
    CrossReferenceResolver,
    IdentityIndex,
    build_history,
    guarded,
)
from casetrace.pipeline.sources import CaseDirectory, RosterSource

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def order_by_occurrence(enriched: list[EnrichedPersonRecord]) -> list[EnrichedPersonRecord]:
    """Stable sort, highest ``occurrence_count`` first."""
    return sorted(enriched, key=lambda e: e.occurrence_count, reverse=True)


class RosterEnricher:
    """Batch enrichment of an accused or bailer roster."""

    def __init__(
        self,
        roster_source: RosterSource,
        case_directory: CaseDirectory,
        *,
        strategy: str = ENRICH_STRATEGY,
        concurrency: int = RESOLVE_CONCURRENCY,
        timeout: float | None = ENRICH_TIMEOUT,
    ):
        if strategy not in ENRICH_STRATEGIES:
            raise ValueError(
                f"Unknown enrichment strategy {strategy!r}; "
                f"expected one of {', '.join(ENRICH_STRATEGIES)}"
            )
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.roster_source = roster_source
        self.case_directory = case_directory
        self.resolver = CrossReferenceResolver(roster_source, case_directory)
        self.strategy = strategy
        self.concurrency = concurrency
        self.timeout = timeout

    async def enrich(
        self,
        roster: list[PersonRecord],
        own_role: Role,
        timeout: float | None = _UNSET,
    ) -> list[EnrichedPersonRecord]:
        """Enrich ``roster`` (all records of ``own_role``) and order the result.

        Args:
            roster: person-records, in roster order
            own_role: the roster the records belong to
            timeout: overrides the configured deadline; ``None`` disables it

        Raises:
            SourceUnavailable: any roster scan or directory lookup failed
            Cancelled: the deadline fired before all lookups finished
        """
        roster = list(roster)
        for rec in roster:
            if rec.role is not own_role:
                raise ValueError(
                    f"Record {rec.id!r} is {rec.role.value}, not {own_role.value}"
                )
        deadline = self.timeout if timeout is _UNSET else timeout

        t0 = time.time()
        try:
            histories = await asyncio.wait_for(self._histories(roster), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                f"Enrichment of {len(roster)} {own_role.value} record(s) exceeded "
                f"{deadline}s deadline, cancelled"
            )
            raise Cancelled(f"Enrichment deadline of {deadline}s exceeded") from None

        enriched = order_by_occurrence([
            EnrichedPersonRecord(record=rec, history=tuple(hist))
            for rec, hist in zip(roster, histories)
        ])
        repeats = sum(1 for e in enriched if e.occurrence_count > 1)
        logger.info(
            f"Enriched {len(enriched)} {own_role.value} record(s) via {self.strategy} "
            f"in {time.time() - t0:.2f}s ({repeats} with cross-case history)"
        )
        return enriched

    async def enrich_roster(self, own_role: Role, timeout: float | None = _UNSET) -> list[EnrichedPersonRecord]:
        """Fetch the full roster for ``own_role`` and enrich it."""
        roster = await guarded(
            f"{own_role.value} roster", self.roster_source.fetch_roster(own_role),
        )
        return await self.enrich(roster, own_role, timeout=timeout)

    async def _histories(self, roster: list[PersonRecord]) -> list[list[CaseHistoryEntry]]:
        if not roster:
            return []
        if self.strategy == "indexed":
            return await self._indexed_histories(roster)
        return await self._fanout_histories(roster)

    # ── Indexed ──

    async def _indexed_histories(self, roster: list[PersonRecord]) -> list[list[CaseHistoryEntry]]:
        accused = await guarded("accused roster", self.roster_source.fetch_roster(Role.ACCUSED))
        bailers = await guarded("bailer roster", self.roster_source.fetch_roster(Role.BAILER))
        index = IdentityIndex(accused, bailers)
        logger.info(f"Identity index built over {len(accused)} accused and "
                    f"{len(bailers)} bailer record(s)")

        matches = [index.lookup(rec.identity, rec.case_id) for rec in roster]
        needed = {cid for per_record in matches for cid, _ in per_record}
        summaries = {}
        if needed:
            summaries = await guarded("case directory", self.case_directory.resolve_cases(needed))
        return [build_history(per_record, summaries) for per_record in matches]

    # ── Fan-out ──

    async def _fanout_histories(self, roster: list[PersonRecord]) -> list[list[CaseHistoryEntry]]:
        sem = asyncio.Semaphore(self.concurrency)
        logger.info(f"RosterEnricher: {len(roster)} record(s), concurrency={self.concurrency}")

        async def _limited_resolve(rec: PersonRecord) -> list[CaseHistoryEntry]:
            async with sem:
                return await self.resolver.resolve(rec.identity, rec.case_id)

        tasks = [asyncio.create_task(_limited_resolve(rec)) for rec in roster]
        try:
            # gather keeps input order regardless of completion order
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # First failure or outer cancellation: stop everything still running.
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
