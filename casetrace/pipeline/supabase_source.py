"""Supabase (PostgREST) adapters for the roster and case-directory interfaces.

Reads ``accused_details`` / ``bailer_details`` / ``fir_records`` over the
REST API with an ``httpx.AsyncClient``. Transport errors and non-2xx
responses are retried with exponential backoff; once retries are
exhausted they surface as ``SourceUnavailable``, never as an empty
result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from casetrace.config import (
    ACCUSED_TABLE,
    BAILER_TABLE,
    CASE_LOOKUP_BATCH,
    CASE_TABLE,
    SOURCE_BACKOFF_BASE,
    SOURCE_MAX_RETRIES,
    SOURCE_PAGE_SIZE,
    SOURCE_TIMEOUT,
    SUPABASE_KEY,
    SUPABASE_URL,
)
from casetrace.pipeline.errors import SourceUnavailable
from casetrace.pipeline.models import CaseSummary, IdentityKey, PersonRecord, Role
from casetrace.pipeline.sources import CaseDirectory, RosterSource

logger = logging.getLogger(__name__)

_PERSON_COLUMNS = "id,fir_id,name,father_name,age,gender,mobile,aadhaar,full_address"
_CASE_COLUMNS = "id,fir_number,district_name,thana_name,case_status,incident_date"


def make_client(
    base_url: str = SUPABASE_URL,
    api_key: str = SUPABASE_KEY,
    timeout: float = SOURCE_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an ``AsyncClient`` pointed at the PostgREST endpoint of a Supabase project."""
    return httpx.AsyncClient(
        base_url=f"{base_url.rstrip('/')}/rest/v1",
        headers={
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        },
        timeout=timeout,
        transport=transport,
    )


def _quote(value: str) -> str:
    """Quote a value for use inside a PostgREST ``or=(...)`` / ``in.(...)`` list."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _age(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def person_from_row(row: dict, role: Role) -> PersonRecord:
    return PersonRecord(
        id=row.get("id"),
        case_id=row.get("fir_id"),
        identity=IdentityKey(mobile=row.get("mobile"), national_id=row.get("aadhaar")),
        role=role,
        name=_text(row.get("name")),
        father_name=_text(row.get("father_name")),
        age=_age(row.get("age")),
        gender=_text(row.get("gender")),
        address=_text(row.get("full_address")),
    )


def case_from_row(row: dict) -> CaseSummary:
    return CaseSummary(
        case_id=row.get("id"),
        case_number=_text(row.get("fir_number")),
        district=_text(row.get("district_name")),
        station=_text(row.get("thana_name")),
        status=_text(row.get("case_status")),
        incident_date=_text(row.get("incident_date")),
    )


class _PostgrestReader:
    """Paged, retrying GET against one PostgREST client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_retries: int = SOURCE_MAX_RETRIES,
        backoff_base: float = SOURCE_BACKOFF_BASE,
        page_size: int = SOURCE_PAGE_SIZE,
    ):
        self.client = client
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.page_size = page_size

    async def _get_page(self, table: str, params: dict) -> list[dict]:
        last_exc: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                response = await self.client.get(f"/{table}", params=params)
                response.raise_for_status()
                rows = response.json()
                if not isinstance(rows, list):
                    raise SourceUnavailable(table, f"unexpected response body: {type(rows).__name__}")
                return rows
            except (httpx.HTTPError, ValueError) as exc:
                last_exc = exc
                if attempt < self.max_retries - 1:
                    wait = self.backoff_base * (2 ** attempt)
                    logger.warning(
                        "%s read attempt %d/%d failed (%s: %s), retrying in %.1fs",
                        table, attempt + 1, self.max_retries,
                        type(exc).__name__, exc, wait,
                    )
                    await asyncio.sleep(wait)

        logger.error(
            "%s: all %d read attempts failed, last error: %s",
            table, self.max_retries, last_exc,
        )
        raise SourceUnavailable(table, f"{type(last_exc).__name__}: {last_exc}")

    async def select_all(self, table: str, params: dict) -> list[dict]:
        """Read every row matching ``params``, following ``limit``/``offset`` pages."""
        rows: list[dict] = []
        offset = 0
        while True:
            page = await self._get_page(
                table, {**params, "limit": str(self.page_size), "offset": str(offset)},
            )
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size


class SupabaseRosterSource(RosterSource):
    """Accused and bailer rosters stored in Supabase tables."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        accused_table: str = ACCUSED_TABLE,
        bailer_table: str = BAILER_TABLE,
        **reader_options,
    ):
        self._reader = _PostgrestReader(client, **reader_options)
        self._tables = {Role.ACCUSED: accused_table, Role.BAILER: bailer_table}

    async def fetch_roster(self, role: Role) -> list[PersonRecord]:
        rows = await self._reader.select_all(
            self._tables[role], {"select": _PERSON_COLUMNS, "order": "id.asc"},
        )
        return [person_from_row(r, role) for r in rows]

    async def fetch_matches(
        self, role: Role, identity: IdentityKey, exclude_case_id: Any,
    ) -> list[PersonRecord]:
        clauses = []
        if identity.mobile is not None:
            clauses.append(f"mobile.eq.{_quote(identity.mobile)}")
        if identity.national_id is not None:
            clauses.append(f"aadhaar.eq.{_quote(identity.national_id)}")
        if not clauses:
            return []
        params = {
            "select": _PERSON_COLUMNS,
            "or": f"({','.join(clauses)})",
            "fir_id": f"neq.{exclude_case_id}",
            "order": "id.asc",
        }
        rows = await self._reader.select_all(self._tables[role], params)
        return [person_from_row(r, role) for r in rows]


class SupabaseCaseDirectory(CaseDirectory):
    """Case summaries from the ``fir_records`` table."""

    def __init__(self, client: httpx.AsyncClient, *, case_table: str = CASE_TABLE, **reader_options):
        self._reader = _PostgrestReader(client, **reader_options)
        self._table = case_table

    async def resolve_cases(self, case_ids: set) -> dict[Any, CaseSummary]:
        ids = sorted(case_ids, key=str)
        found: dict[Any, CaseSummary] = {}
        for start in range(0, len(ids), CASE_LOOKUP_BATCH):
            batch = ids[start:start + CASE_LOOKUP_BATCH]
            rows = await self._reader.select_all(self._table, {
                "select": _CASE_COLUMNS,
                "id": f"in.({','.join(_quote(str(cid)) for cid in batch)})",
                "order": "id.asc",
            })
            for row in rows:
                summary = case_from_row(row)
                found[summary.case_id] = summary
        return found

    async def list_cases(self) -> list[CaseSummary]:
        rows = await self._reader.select_all(
            self._table, {"select": _CASE_COLUMNS, "order": "id.asc"},
        )
        return [case_from_row(r) for r in rows]
