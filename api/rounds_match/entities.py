from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class SpecialtyPreference(str, Enum):
    SAME = "same"
    DIFFERENT = "different"
    NO_PREFERENCE = "no-preference"


class GroupStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    ARCHIVED = "archived"


class BatchState(str, Enum):
    PENDING = "pending"
    SCORING = "scoring"
    ASSEMBLING = "assembling"
    COMMITTING = "committing"
    COMPLETED = "completed"
    FAILED = "failed"


def canonical_pair(member_a: str, member_b: str) -> tuple[str, str]:
    return (member_a, member_b) if member_a <= member_b else (member_b, member_a)


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y"}
    return bool(value)


def _to_str_set(values: Any) -> frozenset[str]:
    if isinstance(values, str):
        try:
            values = json.loads(values)
        except json.JSONDecodeError:
            values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    out: set[str] = set()
    for item in values:
        v = _clean_str(item)
        if v:
            out.add(v)
    return frozenset(out)


def _to_gender(value: Any) -> Gender | None:
    v = (_clean_str(value) or "").lower()
    try:
        return Gender(v)
    except ValueError:
        return None


def _to_preference(value: Any) -> SpecialtyPreference | None:
    v = (_clean_str(value) or "").lower().replace("_", "-")
    if not v:
        return SpecialtyPreference.NO_PREFERENCE
    try:
        return SpecialtyPreference(v)
    except ValueError:
        return None


def as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        out = value
    elif isinstance(value, date):
        out = datetime(value.year, value.month, value.day)
    else:
        try:
            out = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if out.tzinfo is None:
        out = out.replace(tzinfo=timezone.utc)
    return out


def as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class Member:
    """Read-only snapshot of a profile as the engine sees it at cycle start.

    Fields the engine cannot use (unknown gender, blank specialty, an
    unrecognized specialty preference) are kept as ``None`` so eligibility can
    exclude the member instead of failing the cycle.
    """

    id: str
    specialty: str | None = None
    interests: frozenset[str] = frozenset()
    city: str | None = None
    gender: Gender | None = None
    availability_slots: frozenset[str] = frozenset()
    verified: bool = False
    paid: bool = False
    onboarding_complete: bool = False
    last_matched_at: datetime | None = None
    specialty_preference: SpecialtyPreference | None = SpecialtyPreference.NO_PREFERENCE
    first_name: str | None = None

    @classmethod
    def from_mapping(cls, row: dict[str, Any]) -> "Member":
        return cls(
            id=_clean_str(row.get("id")) or "",
            specialty=_clean_str(row.get("specialty")),
            interests=_to_str_set(row.get("interests")),
            city=_clean_str(row.get("city")),
            gender=_to_gender(row.get("gender")),
            availability_slots=_to_str_set(row.get("availability_slots")),
            verified=_to_bool(row.get("is_verified", row.get("verified"))),
            paid=_to_bool(row.get("is_paid", row.get("paid"))),
            onboarding_complete=_to_bool(row.get("onboarding_completed", row.get("onboarding_complete"))),
            last_matched_at=as_datetime(row.get("last_matched_at")),
            specialty_preference=_to_preference(row.get("specialty_preference")),
            first_name=_clean_str(row.get("first_name")),
        )

    def missing_attributes(self) -> list[str]:
        missing = []
        if not self.id:
            missing.append("id")
        if not self.specialty:
            missing.append("specialty")
        if not self.city:
            missing.append("city")
        if self.gender is None:
            missing.append("gender")
        if self.specialty_preference is None:
            missing.append("specialty_preference")
        return missing

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "specialty": self.specialty,
            "interests": sorted(self.interests),
            "city": self.city,
            "gender": self.gender.value if self.gender else None,
            "availability_slots": sorted(self.availability_slots),
            "is_verified": self.verified,
            "is_paid": self.paid,
            "onboarding_completed": self.onboarding_complete,
            "last_matched_at": self.last_matched_at,
            "specialty_preference": self.specialty_preference.value if self.specialty_preference else None,
        }


@dataclass(frozen=True)
class CompatibilityScore:
    member_a: str
    member_b: str
    value: float
    components: dict[str, float]
    weighted: dict[str, float]

    @property
    def pair(self) -> tuple[str, str]:
        return (self.member_a, self.member_b)


@dataclass(frozen=True)
class GroupProposal:
    member_ids: tuple[str, ...]
    average_compatibility: float
    contributions: dict[str, float]


@dataclass(frozen=True)
class MatchBatch:
    id: str
    cycle_date: date
    algorithm_version: str
    eligible_count: int
    groups_created: int
    users_matched: int
    started_at: datetime
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Group:
    id: str
    batch_id: str
    member_ids: tuple[str, ...]
    average_compatibility: float
    status: GroupStatus
    created_at: datetime


@dataclass(frozen=True)
class Membership:
    group_id: str
    member_id: str
    score_contribution: float
    joined_at: datetime
    active: bool = True


@dataclass
class BatchSummary:
    batch_id: str
    cycle_date: date
    cycle_label: str
    algorithm_version: str
    eligible_count: int
    groups_created: int
    users_matched: int
    average_compatibility: float
    leftover_member_ids: list[str] = field(default_factory=list)
    eligibility: dict[str, int] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "cycle_date": self.cycle_date.isoformat(),
            "cycle_label": self.cycle_label,
            "algorithm_version": self.algorithm_version,
            "eligible_count": self.eligible_count,
            "groups_created": self.groups_created,
            "users_matched": self.users_matched,
            "average_compatibility": self.average_compatibility,
            "leftover_member_ids": list(self.leftover_member_ids),
            "eligibility": dict(self.eligibility),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class RunLogEntry:
    cycle_date: date
    status: str
    eligible_count: int = 0
    groups_created: int = 0
    reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
