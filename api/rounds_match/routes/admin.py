from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from .. import config
from ..deps import get_orchestrator, get_repository, http_error_for, validate_admin_token
from ..entities import GroupStatus
from ..errors import MatchingError
from ..schemas import BatchRow, BatchSummaryResponse, EligibilityResponse, GroupView, MatchingStatsResponse
from ..services.state_machine import transition_group_status

router = APIRouter()


def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    validate_admin_token(x_admin_token, config.ADMIN_TOKEN)


@router.post("/admin/matching/run", response_model=BatchSummaryResponse, dependencies=[Depends(require_admin)])
def run_matching(
    cycle_date: str | None = Query(default=None),
    orchestrator=Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        summary = orchestrator.run_cycle(cycle_date)
    except MatchingError as exc:
        raise http_error_for(exc)
    return summary.to_dict()


@router.get("/admin/matching/stats", response_model=MatchingStatsResponse, dependencies=[Depends(require_admin)])
def matching_stats(repository=Depends(get_repository)) -> dict[str, Any]:
    return repository.matching_stats()


@router.get("/admin/matching/batches", response_model=list[BatchRow], dependencies=[Depends(require_admin)])
def list_batches(limit: int = Query(default=20, ge=1, le=200), repository=Depends(get_repository)) -> list[dict[str, Any]]:
    return repository.list_batches(limit)


@router.get("/admin/matching/eligibility", response_model=EligibilityResponse, dependencies=[Depends(require_admin)])
def matching_eligibility(
    cycle_date: str | None = Query(default=None),
    orchestrator=Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        return orchestrator.eligibility_counts(cycle_date)
    except MatchingError as exc:
        raise http_error_for(exc)


@router.post("/admin/groups/{group_id}/archive", response_model=GroupView, dependencies=[Depends(require_admin)])
def archive_group(group_id: str, repository=Depends(get_repository)) -> dict[str, Any]:
    group = repository.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    status = transition_group_status(GroupStatus(group["status"]), "archive")
    return repository.set_group_status(group_id, status)
