from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable

from ..config import ALGORITHM_VERSION, COOLDOWN_WEEKS, MATCH_TIMEZONE
from ..entities import (
    BatchState,
    BatchSummary,
    Group,
    GroupStatus,
    MatchBatch,
    Member,
    Membership,
    RunLogEntry,
)
from ..errors import BatchFailed, DuplicateBatchError
from ..repo import MatchRepository, RosterSource
from .assembly import GroupAssembler
from .cycles import cycle_label, cycle_start, resolve_cycle_date
from .eligibility import eligibility_report
from .events import Notifier, groups_formed_event
from .scoring import CompatibilityScorer
from .state_machine import transition_batch_state

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchOrchestrator:
    """Runs one weekly matching cycle end to end.

    Everything up to the commit is computed in memory from a roster snapshot;
    the batch, its groups and memberships and the members' ``last_matched_at``
    are then written in a single transaction. Notifications go out only after
    that transaction succeeds.
    """

    def __init__(
        self,
        repository: MatchRepository,
        roster_source: RosterSource,
        notifier: Notifier | None = None,
        *,
        scorer: CompatibilityScorer | None = None,
        assembler: GroupAssembler | None = None,
        cooldown_weeks: int = COOLDOWN_WEEKS,
        timezone: str = MATCH_TIMEZONE,
        algorithm_version: str = ALGORITHM_VERSION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.roster_source = roster_source
        self.notifier = notifier
        self.scorer = scorer or CompatibilityScorer()
        self.assembler = assembler or GroupAssembler()
        self.cooldown_weeks = cooldown_weeks
        self.timezone = timezone
        self.algorithm_version = algorithm_version
        self.clock = clock
        self.state = BatchState.PENDING

    def _advance(self, action: str, cycle_date: date) -> None:
        self.state = transition_batch_state(self.state, action)
        logger.info("[MATCHING] cycle=%s state=%s", cycle_label(cycle_date), self.state.value)

    def eligibility_counts(self, cycle_date: Any = None) -> dict[str, Any]:
        resolved = resolve_cycle_date(cycle_date, self.clock(), self.timezone)
        report = eligibility_report(
            self.roster_source.list_roster(),
            cycle_start(resolved, self.timezone),
            self.cooldown_weeks,
        )
        return {"cycle_date": resolved.isoformat(), "cycle_label": cycle_label(resolved), "counts": report.counts}

    def run_cycle(self, cycle_date: Any = None) -> BatchSummary:
        started_at = self.clock()
        resolved = resolve_cycle_date(cycle_date, started_at, self.timezone)
        self.state = BatchState.PENDING

        if self.repository.batch_exists(resolved):
            logger.info("[MATCHING] cycle=%s already has a batch", cycle_label(resolved))
            self._record(RunLogEntry(cycle_date=resolved, status="duplicate", reason="batch already exists"))
            raise DuplicateBatchError(resolved)

        matched_at = cycle_start(resolved, self.timezone)
        roster = self.roster_source.list_roster()
        report = eligibility_report(roster, matched_at, self.cooldown_weeks)
        pool = report.eligible

        self._advance("score", resolved)
        matrix = self.scorer.score_matrix(pool)

        self._advance("assemble", resolved)
        assembled = self.assembler.assemble(pool, matrix)

        self._advance("commit", resolved)
        batch_id = str(uuid.uuid4())
        created_at = self.clock()
        by_id: dict[str, Member] = {m.id: m for m in pool}
        groups: list[tuple[Group, list[Membership]]] = []
        for proposal in assembled.groups:
            group = Group(
                id=str(uuid.uuid4()),
                batch_id=batch_id,
                member_ids=proposal.member_ids,
                average_compatibility=proposal.average_compatibility,
                status=GroupStatus.CREATED,
                created_at=created_at,
            )
            memberships = [
                Membership(
                    group_id=group.id,
                    member_id=mid,
                    score_contribution=proposal.contributions.get(mid, 0.0),
                    joined_at=created_at,
                )
                for mid in proposal.member_ids
            ]
            groups.append((group, memberships))

        matched_ids = [mid for group, _ in groups for mid in group.member_ids]
        completed_at = self.clock()
        batch = MatchBatch(
            id=batch_id,
            cycle_date=resolved,
            algorithm_version=self.algorithm_version,
            eligible_count=len(pool),
            groups_created=len(groups),
            users_matched=len(matched_ids),
            started_at=started_at,
            completed_at=completed_at,
        )

        handle = self.repository.begin_batch(resolved)
        try:
            self.repository.insert_batch(handle, batch)
            for group, memberships in groups:
                self.repository.insert_group(handle, group, memberships)
            self.repository.mark_matched(handle, matched_ids, matched_at)
            self.repository.commit(handle)
        except DuplicateBatchError:
            self.repository.rollback(handle)
            self._advance("fail", resolved)
            self._record(RunLogEntry(cycle_date=resolved, status="duplicate", reason="batch committed concurrently"))
            raise
        except Exception as exc:
            self.repository.rollback(handle)
            self._advance("fail", resolved)
            logger.exception("[MATCHING] cycle=%s commit failed", cycle_label(resolved))
            self._record(
                RunLogEntry(
                    cycle_date=resolved,
                    status="failed",
                    eligible_count=len(pool),
                    reason=str(exc) or exc.__class__.__name__,
                )
            )
            raise BatchFailed(resolved, exc)

        self._advance("complete", resolved)

        for group, _ in groups:
            self._notify(group, [by_id[mid] for mid in group.member_ids], resolved)

        averages = [group.average_compatibility for group, _ in groups]
        summary = BatchSummary(
            batch_id=batch_id,
            cycle_date=resolved,
            cycle_label=cycle_label(resolved),
            algorithm_version=self.algorithm_version,
            eligible_count=len(pool),
            groups_created=len(groups),
            users_matched=len(matched_ids),
            average_compatibility=round(sum(averages) / len(averages), 6) if averages else 0.0,
            leftover_member_ids=[m.id for m in assembled.leftovers],
            eligibility=report.counts,
            started_at=started_at,
            completed_at=completed_at,
        )
        self._record(
            RunLogEntry(
                cycle_date=resolved,
                status="completed",
                eligible_count=summary.eligible_count,
                groups_created=summary.groups_created,
            )
        )
        logger.info(
            "[MATCHING] cycle=%s eligible=%s groups=%s matched=%s leftovers=%s avg=%s",
            summary.cycle_label,
            summary.eligible_count,
            summary.groups_created,
            summary.users_matched,
            len(summary.leftover_member_ids),
            summary.average_compatibility,
        )
        return summary

    def _notify(self, group: Group, members: list[Member], cycle_date: date) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(groups_formed_event(group, members, cycle_date))
        except Exception:
            logger.warning("[NOTIFY] delivery failed for group_id=%s", group.id, exc_info=True)

    def _record(self, entry: RunLogEntry) -> None:
        try:
            self.repository.record_run(entry)
        except Exception:
            logger.warning("[MATCHING] could not record run log for cycle=%s", entry.cycle_date, exc_info=True)
