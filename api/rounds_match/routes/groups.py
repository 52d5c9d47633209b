from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException

from ..deps import get_repository, parse_actor_user_id
from ..entities import GroupStatus
from ..schemas import GroupView
from ..services.state_machine import transition_group_status
from ..services.welcome import compatibility_percentage, describe_compatibility

router = APIRouter()


def current_member_id(x_actor_user_id: str | None = Header(default=None, alias="X-Actor-User-Id")) -> str:
    return parse_actor_user_id(x_actor_user_id)


def _with_compatibility(view: dict[str, Any]) -> dict[str, Any]:
    out = dict(view)
    out["compatibility"] = describe_compatibility(compatibility_percentage(view.get("average_compatibility") or 0.0))
    return out


def _membership_view(repository, group_id: str, member_id: str) -> dict[str, Any]:
    for view in repository.list_member_groups(member_id):
        if view["group_id"] == group_id:
            return view
    raise HTTPException(status_code=404, detail="Membership not found")


@router.get("/members/me/groups", response_model=list[GroupView])
def my_groups(member_id: str = Depends(current_member_id), repository=Depends(get_repository)) -> list[dict[str, Any]]:
    return [_with_compatibility(v) for v in repository.list_member_groups(member_id)]


@router.post("/groups/{group_id}/join", response_model=GroupView)
def join_group(group_id: str, member_id: str = Depends(current_member_id), repository=Depends(get_repository)) -> dict[str, Any]:
    view = _membership_view(repository, group_id, member_id)
    current = GroupStatus(view["status"])
    if current == GroupStatus.ARCHIVED:
        raise HTTPException(status_code=409, detail="Group is archived")

    updated = repository.set_membership_active(group_id, member_id, True)
    if updated is None:
        raise HTTPException(status_code=404, detail="Membership not found")
    next_status = transition_group_status(current, "activate")
    if next_status != current:
        repository.set_group_status(group_id, next_status)
        updated = dict(updated, status=next_status.value)
    return _with_compatibility(updated)


@router.post("/groups/{group_id}/pass", response_model=GroupView)
def pass_group(group_id: str, member_id: str = Depends(current_member_id), repository=Depends(get_repository)) -> dict[str, Any]:
    _membership_view(repository, group_id, member_id)
    updated = repository.set_membership_active(group_id, member_id, False)
    if updated is None:
        raise HTTPException(status_code=404, detail="Membership not found")
    return _with_compatibility(updated)
