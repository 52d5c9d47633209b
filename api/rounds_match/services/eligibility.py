from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from ..entities import Member, as_datetime

logger = logging.getLogger(__name__)

EXCLUSION_REASONS = (
    "missing_attributes",
    "duplicate_member",
    "not_verified",
    "not_paid",
    "onboarding_incomplete",
    "cooldown",
)


@dataclass
class EligibilityReport:
    eligible: list[Member] = field(default_factory=list)
    excluded: list[tuple[str, str]] = field(default_factory=list)
    roster_size: int = 0

    @property
    def counts(self) -> dict[str, int]:
        out = {"roster": self.roster_size, "eligible": len(self.eligible)}
        for reason in EXCLUSION_REASONS:
            out[reason] = 0
        for _, reason in self.excluded:
            out[reason] = out.get(reason, 0) + 1
        return out


def in_cooldown(member: Member, now: datetime, cooldown_weeks: int = 6) -> bool:
    if member.last_matched_at is None:
        return False
    # naive values are read as UTC
    now = as_datetime(now)
    last = as_datetime(member.last_matched_at)
    # wall-clock difference in now's zone so a DST change does not shift a cycle boundary
    elapsed = now.replace(tzinfo=None) - last.astimezone(now.tzinfo).replace(tzinfo=None)
    return elapsed < timedelta(weeks=cooldown_weeks)


def _exclusion_reason(member: Member, now: datetime, cooldown_weeks: int) -> str | None:
    if member.missing_attributes():
        return "missing_attributes"
    if not member.verified:
        return "not_verified"
    if not member.paid:
        return "not_paid"
    if not member.onboarding_complete:
        return "onboarding_incomplete"
    if in_cooldown(member, now, cooldown_weeks):
        return "cooldown"
    return None


def eligibility_report(roster: Iterable[Member], now: datetime, cooldown_weeks: int = 6) -> EligibilityReport:
    report = EligibilityReport()
    seen: set[str] = set()
    for member in roster:
        report.roster_size += 1
        if member.id and member.id in seen:
            reason = "duplicate_member"
        else:
            reason = _exclusion_reason(member, now, cooldown_weeks)
        if member.id:
            seen.add(member.id)
        if reason is not None:
            report.excluded.append((member.id, reason))
            if reason in {"missing_attributes", "duplicate_member"}:
                logger.warning(
                    "[ELIGIBILITY] excluded member_id=%s reason=%s missing=%s",
                    member.id or "<blank>",
                    reason,
                    ",".join(member.missing_attributes()),
                )
            continue
        report.eligible.append(member)

    logger.info("[ELIGIBILITY] roster=%s eligible=%s excluded=%s", report.roster_size, len(report.eligible), len(report.excluded))
    return report


def filter_eligible(roster: Iterable[Member], now: datetime, cooldown_weeks: int = 6) -> list[Member]:
    return eligibility_report(roster, now, cooldown_weeks).eligible
