"""Tests for the Cross-Reference Resolver and the batch identity index.

Covers:
  - Unmatchable identities short-circuit without touching the sources
  - Origin-case exclusion and OR matching across mobile / national id
  - Deduplication by case id and the accused-over-bailer tie-break
  - Partial directory misses (dropped) vs. source failures (raised)
  - IdentityIndex agreeing with the per-record resolver
"""

import pytest
from unittest.mock import AsyncMock

from casetrace.pipeline.errors import SourceUnavailable
from casetrace.pipeline.models import CaseSummary, IdentityKey, Role
from casetrace.pipeline.resolver import CrossReferenceResolver, IdentityIndex, merge_matches
from casetrace.pipeline.sources import InMemoryCaseDirectory, InMemoryRosterSource


def _ids_and_roles(history):
    return [(h.case_id, h.role) for h in history]


# ═══════════════════════════════════════════════════
# Short-circuit
# ═══════════════════════════════════════════════════

class TestUnmatchableIdentity:
    @pytest.mark.asyncio
    async def test_returns_empty_without_scanning(self):
        roster = AsyncMock()
        directory = AsyncMock()
        resolver = CrossReferenceResolver(roster, directory)

        history = await resolver.resolve(IdentityKey(), origin_case_id=10)

        assert history == []
        roster.fetch_matches.assert_not_called()
        directory.resolve_cases.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_strings_are_unmatchable(self):
        roster = AsyncMock()
        resolver = CrossReferenceResolver(roster, AsyncMock())
        assert await resolver.resolve(IdentityKey(mobile="", national_id=""), 10) == []
        roster.fetch_matches.assert_not_called()


# ═══════════════════════════════════════════════════
# Matching
# ═══════════════════════════════════════════════════

class TestMatching:
    @pytest.mark.asyncio
    async def test_repeat_offender_scenario(self, make_accused, cases):
        a1 = make_accused(1, 10, mobile="9000000001")
        a2 = make_accused(2, 11, mobile="9000000001")
        resolver = CrossReferenceResolver(InMemoryRosterSource(accused=[a1, a2]), cases)

        history = await resolver.resolve(a1.identity, 10)

        assert _ids_and_roles(history) == [(11, Role.ACCUSED)]
        assert history[0].case.case_number == "FIR-11/2024"

    @pytest.mark.asyncio
    async def test_origin_case_never_in_history(self, make_accused, make_bailer, cases):
        """Other records in the same case (co-accused, their bailer) are excluded too."""
        source = InMemoryRosterSource(
            accused=[
                make_accused(1, 10, mobile="9000000001"),
                make_accused(2, 10, mobile="9000000001"),
                make_accused(3, 12, mobile="9000000001"),
            ],
            bailers=[make_bailer(1, 10, mobile="9000000001")],
        )
        history = await CrossReferenceResolver(source, cases).resolve(
            IdentityKey(mobile="9000000001"), 10,
        )
        assert [h.case_id for h in history] == [12]

    @pytest.mark.asyncio
    async def test_or_match_across_keys(self, make_accused, cases):
        source = InMemoryRosterSource(accused=[
            make_accused(1, 11, mobile="9000000001", national_id="OTHER"),
            make_accused(2, 12, mobile="8000000000", national_id="ID123"),
            make_accused(3, 13, national_id="ID123"),
            make_accused(4, 14, mobile="7000000000", national_id="NOPE"),
        ])
        history = await CrossReferenceResolver(source, cases).resolve(
            IdentityKey(mobile="9000000001", national_id="ID123"), 10,
        )
        assert [h.case_id for h in history] == [11, 12, 13]

    @pytest.mark.asyncio
    async def test_bailer_roster_matches_tagged_bailer(self, make_bailer, cases):
        source = InMemoryRosterSource(bailers=[make_bailer(1, 15, mobile="9000000001")])
        history = await CrossReferenceResolver(source, cases).resolve(
            IdentityKey(mobile="9000000001"), 10,
        )
        assert _ids_and_roles(history) == [(15, Role.BAILER)]

    @pytest.mark.asyncio
    async def test_suspicious_bailer_scenario(self, suspicious_bailer_sources):
        source, directory = suspicious_bailer_sources
        history = await CrossReferenceResolver(source, directory).resolve(
            IdentityKey(national_id="ID123"), 20,
        )
        assert _ids_and_roles(history) == [(21, Role.ACCUSED)]


# ═══════════════════════════════════════════════════
# Deduplication & tie-break
# ═══════════════════════════════════════════════════

class TestDeduplication:
    @pytest.mark.asyncio
    async def test_no_duplicate_case_ids(self, make_accused, cases):
        """Two co-accused in case 11 sharing the mobile yield one entry."""
        source = InMemoryRosterSource(accused=[
            make_accused(1, 11, mobile="9000000001"),
            make_accused(2, 11, mobile="9000000001"),
            make_accused(3, 12, national_id="ID123"),
            make_accused(4, 12, mobile="9000000001"),
        ])
        history = await CrossReferenceResolver(source, cases).resolve(
            IdentityKey(mobile="9000000001", national_id="ID123"), 10,
        )
        case_ids = [h.case_id for h in history]
        assert case_ids == [11, 12]
        assert len(case_ids) == len(set(case_ids))

    @pytest.mark.asyncio
    async def test_accused_wins_tie_break(self, make_accused, make_bailer, cases):
        """Same case matched in both rosters: the entry is tagged accused."""
        source = InMemoryRosterSource(
            accused=[make_accused(1, 11, mobile="9000000001")],
            bailers=[
                make_bailer(1, 11, mobile="9000000001"),
                make_bailer(2, 12, mobile="9000000001"),
            ],
        )
        history = await CrossReferenceResolver(source, cases).resolve(
            IdentityKey(mobile="9000000001"), 10,
        )
        assert _ids_and_roles(history) == [(11, Role.ACCUSED), (12, Role.BAILER)]

    def test_merge_matches_first_hit_wins(self):
        merged = merge_matches(
            [(Role.ACCUSED, [5, 6, 5]), (Role.BAILER, [6, 7, 1])],
            origin_case_id=1,
        )
        assert merged == [(5, Role.ACCUSED), (6, Role.ACCUSED), (7, Role.BAILER)]


# ═══════════════════════════════════════════════════
# Failure semantics
# ═══════════════════════════════════════════════════

class TestFailures:
    @pytest.mark.asyncio
    async def test_directory_miss_drops_entry(self, make_accused):
        source = InMemoryRosterSource(accused=[
            make_accused(1, 11, mobile="9000000001"),
            make_accused(2, 99, mobile="9000000001"),
        ])
        directory = InMemoryCaseDirectory([CaseSummary(case_id=11, case_number="FIR-11")])

        history = await CrossReferenceResolver(source, directory).resolve(
            IdentityKey(mobile="9000000001"), 10,
        )
        assert [h.case_id for h in history] == [11]

    @pytest.mark.asyncio
    async def test_roster_failure_raises_source_unavailable(self, cases):
        roster = AsyncMock()
        roster.fetch_matches.side_effect = ConnectionError("backend down")
        resolver = CrossReferenceResolver(roster, cases)

        with pytest.raises(SourceUnavailable) as exc_info:
            await resolver.resolve(IdentityKey(mobile="9000000001"), 10)
        assert exc_info.value.source == "accused roster"

    @pytest.mark.asyncio
    async def test_bailer_roster_failure_is_not_partial_success(self, make_accused, cases):
        accused = [make_accused(1, 11, mobile="9000000001")]
        good = InMemoryRosterSource(accused=accused)

        async def fetch_matches(role, identity, exclude_case_id):
            if role is Role.BAILER:
                raise TimeoutError("read timed out")
            return await good.fetch_matches(role, identity, exclude_case_id)

        roster = AsyncMock()
        roster.fetch_matches.side_effect = fetch_matches
        with pytest.raises(SourceUnavailable):
            await CrossReferenceResolver(roster, cases).resolve(IdentityKey(mobile="9000000001"), 10)

    @pytest.mark.asyncio
    async def test_directory_failure_raises(self, make_accused):
        source = InMemoryRosterSource(accused=[make_accused(1, 11, mobile="9000000001")])
        directory = AsyncMock()
        directory.resolve_cases.side_effect = OSError("connection reset")

        with pytest.raises(SourceUnavailable) as exc_info:
            await CrossReferenceResolver(source, directory).resolve(IdentityKey(mobile="9000000001"), 10)
        assert exc_info.value.source == "case directory"

    @pytest.mark.asyncio
    async def test_source_unavailable_passes_through_unwrapped(self, cases):
        original = SourceUnavailable("accused_details", "HTTP 503")
        roster = AsyncMock()
        roster.fetch_matches.side_effect = original
        with pytest.raises(SourceUnavailable) as exc_info:
            await CrossReferenceResolver(roster, cases).resolve(IdentityKey(mobile="1"), 10)
        assert exc_info.value is original


# ═══════════════════════════════════════════════════
# IdentityIndex
# ═══════════════════════════════════════════════════

class TestIdentityIndex:
    @pytest.mark.asyncio
    async def test_index_agrees_with_resolver(self, make_accused, make_bailer, cases):
        accused = [
            make_accused(1, 10, mobile="9000000001"),
            make_accused(2, 11, mobile="9000000001", national_id="ID123"),
            make_accused(3, 13, national_id="ID123"),
            make_accused(4, 14),
            make_accused(5, 12, mobile="9000000005"),
        ]
        bailers = [
            make_bailer(1, 11, national_id="ID123"),
            make_bailer(2, 16, mobile="9000000005"),
            make_bailer(3, 17, mobile="9000000001"),
        ]
        source = InMemoryRosterSource(accused=accused, bailers=bailers)
        resolver = CrossReferenceResolver(source, cases)
        index = IdentityIndex(accused, bailers)

        for rec in accused + bailers:
            history = await resolver.resolve(rec.identity, rec.case_id)
            assert [(cid, role) for cid, role in index.lookup(rec.identity, rec.case_id)] \
                == _ids_and_roles(history), f"mismatch for {rec.role.value} {rec.id}"

    def test_unmatchable_lookup_is_empty(self, make_accused):
        index = IdentityIndex([make_accused(1, 10), make_accused(2, 11)], [])
        assert index.lookup(IdentityKey(), 10) == []
