"""Cross-reference endpoints: single-record history, enriched rosters, dashboard stats.

"No history found" is a 200 with an empty list. A failed lookup is a
503 (source unavailable) or 504 (deadline exceeded), so the two can
never be confused by the frontend.
"""

import logging
from typing import Any, Awaitable, TypeVar

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from casetrace.pipeline.enrichment import RosterEnricher
from casetrace.pipeline.errors import Cancelled, SourceUnavailable
from casetrace.pipeline.models import IdentityKey, Role
from casetrace.pipeline.resolver import guarded
from casetrace.pipeline.statistics import summarize, summarize_cases

router = APIRouter()
logger = logging.getLogger(__name__)

T = TypeVar("T")


class HistoryRequest(BaseModel):
    origin_case_id: int
    mobile: str | None = None
    national_id: str | None = None


async def _run(call: Awaitable[T]) -> T:
    """Await an engine call, mapping its error kinds onto HTTP status codes."""
    try:
        return await call
    except SourceUnavailable as e:
        logger.error(f"Cross-reference lookup failed: {e}")
        raise HTTPException(status_code=503, detail=e.safe_message)
    except Cancelled as e:
        logger.warning(f"Cross-reference lookup cancelled: {e}")
        raise HTTPException(status_code=504, detail=e.safe_message)


def _enricher(request: Request) -> RosterEnricher:
    return request.app.state.enricher


@router.post("/history")
async def get_history(body: HistoryRequest, request: Request):
    """Cross-case history for one person (detail view)."""
    identity = IdentityKey(mobile=body.mobile, national_id=body.national_id)
    history = await _run(
        _enricher(request).resolver.resolve(identity, body.origin_case_id)
    )
    return {
        "origin_case_id": body.origin_case_id,
        "identity": identity.to_dict(),
        "history": [h.to_dict() for h in history],
        "occurrence_count": len(history) + 1,
    }


async def _roster_response(request: Request, role: Role) -> dict[str, Any]:
    enriched = await _run(_enricher(request).enrich_roster(role))
    return {
        "stats": summarize(enriched, role).to_dict(),
        "records": [e.to_dict() for e in enriched],
    }


@router.get("/accused")
async def get_accused(request: Request):
    """Accused roster, repeat offenders first."""
    return await _roster_response(request, Role.ACCUSED)


@router.get("/bailers")
async def get_bailers(request: Request):
    """Bailer roster, repeat and previously-accused bailers first."""
    return await _roster_response(request, Role.BAILER)


@router.get("/summary")
async def get_summary(request: Request):
    """Dashboard counts for both rosters plus a status rollup over every case."""
    enricher = _enricher(request)
    accused = await _run(enricher.enrich_roster(Role.ACCUSED))
    bailers = await _run(enricher.enrich_roster(Role.BAILER))

    cases = await _run(guarded("case directory", enricher.case_directory.list_cases()))
    return {
        "accused": summarize(accused, Role.ACCUSED).to_dict(),
        "bailers": summarize(bailers, Role.BAILER).to_dict(),
        "cases": summarize_cases(cases).to_dict(),
    }
