"""Shared fixtures for the cross-reference test suite."""

import pytest

from casetrace.pipeline.models import CaseSummary, IdentityKey, PersonRecord, Role
from casetrace.pipeline.sources import InMemoryCaseDirectory, InMemoryRosterSource


# ═══════════════════════════════════════════════════
# Record factories
# ═══════════════════════════════════════════════════

def _person(role: Role, rec_id, case_id, mobile=None, national_id=None, name=""):
    return PersonRecord(
        id=rec_id,
        case_id=case_id,
        identity=IdentityKey(mobile=mobile, national_id=national_id),
        role=role,
        name=name or f"{role.value}-{rec_id}",
    )


@pytest.fixture
def make_accused():
    """Factory: make_accused(id, case_id, mobile=None, national_id=None)."""
    def _make(rec_id, case_id, mobile=None, national_id=None, name=""):
        return _person(Role.ACCUSED, rec_id, case_id, mobile, national_id, name)
    return _make


@pytest.fixture
def make_bailer():
    """Factory: make_bailer(id, case_id, mobile=None, national_id=None)."""
    def _make(rec_id, case_id, mobile=None, national_id=None, name=""):
        return _person(Role.BAILER, rec_id, case_id, mobile, national_id, name)
    return _make


def make_case(case_id, status="registered"):
    return CaseSummary(
        case_id=case_id,
        case_number=f"FIR-{case_id}/2024",
        district="Jhansi",
        station=f"GRP Thana {case_id}",
        status=status,
        incident_date="2024-03-15",
    )


@pytest.fixture
def cases():
    """Case directory covering case ids 10-29."""
    return InMemoryCaseDirectory(make_case(cid) for cid in range(10, 30))


# ═══════════════════════════════════════════════════
# Roster fixtures (shaped like the documented scenarios)
# ═══════════════════════════════════════════════════

@pytest.fixture
def repeat_offender_roster(make_accused):
    """A1 and A2 share a mobile across cases 10 and 11; A4 is a one-off."""
    return [
        make_accused(1, 10, mobile="9000000001"),
        make_accused(4, 12, mobile="9000000004"),
        make_accused(2, 11, mobile="9000000001"),
    ]


@pytest.fixture
def suspicious_bailer_sources(make_accused, make_bailer, cases):
    """B1 stood bail in case 20; the same national id was accused in case 21."""
    accused = [make_accused(3, 21, national_id="ID123")]
    bailers = [make_bailer(1, 20, national_id="ID123")]
    return InMemoryRosterSource(accused=accused, bailers=bailers), cases
