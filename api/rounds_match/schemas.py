from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class BatchSummaryResponse(BaseModel):
    batch_id: str
    cycle_date: str
    cycle_label: str
    algorithm_version: str
    eligible_count: int
    groups_created: int
    users_matched: int
    average_compatibility: float
    leftover_member_ids: list[str] = Field(default_factory=list)
    eligibility: dict[str, int] = Field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class CronRunResponse(BaseModel):
    status: str
    cycle_date: str
    summary: BatchSummaryResponse | None = None


class BatchRow(BaseModel):
    id: str
    cycle_date: str | None
    algorithm_version: str
    eligible_count: int
    groups_created: int
    users_matched: int
    started_at: str | None = None
    completed_at: str | None = None


class MatchingStatsResponse(BaseModel):
    total_batches: int
    total_groups: int
    total_members_matched: int
    average_compatibility: float
    group_status_counts: dict[str, int] = Field(default_factory=dict)
    last_cycle_date: str | None = None


class EligibilityResponse(BaseModel):
    cycle_date: str
    cycle_label: str
    counts: dict[str, int]


class GroupView(BaseModel):
    group_id: str
    batch_id: str
    cycle_date: str | None = None
    member_ids: list[str]
    average_compatibility: float
    status: str
    created_at: str | None = None
    active: bool | None = None
    score_contribution: float | None = None
    joined_at: str | None = None
    compatibility: dict[str, Any] | None = None
