from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Iterable, Sequence

from ..entities import Group, GroupStatus, MatchBatch, Member, Membership, RunLogEntry
from ..errors import DuplicateBatchError
from ..repo import TransactionHandle


class InMemoryRosterSource:
    def __init__(self, members: Iterable[Member] | None = None) -> None:
        self._members: dict[str, Member] = {}
        self._order: list[str] = []
        for member in members or []:
            self.upsert(member)

    def upsert(self, member: Member) -> None:
        if member.id not in self._members:
            self._order.append(member.id)
        self._members[member.id] = member

    def get(self, member_id: str) -> Member | None:
        return self._members.get(member_id)

    def list_roster(self) -> list[Member]:
        return [self._members[mid] for mid in self._order]

    def apply_matched(self, member_ids: Sequence[str], matched_at: datetime) -> None:
        for mid in member_ids:
            member = self._members.get(mid)
            if member is not None:
                self._members[mid] = replace(member, last_matched_at=matched_at)


class InMemoryMatchRepository:
    """Process-local repository; writes are staged per handle and applied on commit."""

    def __init__(self, roster: InMemoryRosterSource | None = None) -> None:
        self.roster = roster
        self.batches: dict[date, MatchBatch] = {}
        self.groups: dict[str, Group] = {}
        self.memberships: dict[tuple[str, str], Membership] = {}
        self.run_log: list[RunLogEntry] = []
        self.last_matched: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def batch_exists(self, cycle_date: date) -> bool:
        return cycle_date in self.batches

    def begin_batch(self, cycle_date: date) -> TransactionHandle:
        return TransactionHandle(
            cycle_date=cycle_date,
            staged={"batch": [], "groups": [], "memberships": [], "matched": []},
        )

    def insert_batch(self, handle: TransactionHandle, batch: MatchBatch) -> None:
        handle.staged["batch"].append(batch)

    def insert_group(self, handle: TransactionHandle, group: Group, memberships: Sequence[Membership]) -> None:
        handle.staged["groups"].append(group)
        handle.staged["memberships"].extend(memberships)

    def mark_matched(self, handle: TransactionHandle, member_ids: Sequence[str], matched_at: datetime) -> None:
        handle.staged["matched"].extend((mid, matched_at) for mid in member_ids)

    def commit(self, handle: TransactionHandle) -> None:
        with self._lock:
            if handle.closed:
                return
            handle.closed = True
            if handle.cycle_date in self.batches:
                raise DuplicateBatchError(handle.cycle_date)
            for batch in handle.staged["batch"]:
                self.batches[batch.cycle_date] = batch
            for group in handle.staged["groups"]:
                self.groups[group.id] = group
            for membership in handle.staged["memberships"]:
                self.memberships[(membership.group_id, membership.member_id)] = membership
            for mid, matched_at in handle.staged["matched"]:
                self.last_matched[mid] = matched_at
                if self.roster is not None:
                    self.roster.apply_matched([mid], matched_at)

    def rollback(self, handle: TransactionHandle) -> None:
        handle.staged = {}
        handle.closed = True

    def get_batch(self, cycle_date: date) -> MatchBatch | None:
        return self.batches.get(cycle_date)

    def list_batches(self, limit: int = 20) -> list[dict[str, Any]]:
        ordered = sorted(self.batches.values(), key=lambda b: b.cycle_date, reverse=True)
        return [_batch_view(b) for b in ordered[: max(1, min(200, int(limit)))]]

    def matching_stats(self) -> dict[str, Any]:
        groups = list(self.groups.values())
        status_counts: dict[str, int] = {}
        for g in groups:
            status_counts[g.status.value] = status_counts.get(g.status.value, 0) + 1
        avg = sum(g.average_compatibility for g in groups) / len(groups) if groups else 0.0
        last = max(self.batches) if self.batches else None
        return {
            "total_batches": len(self.batches),
            "total_groups": sum(b.groups_created for b in self.batches.values()),
            "total_members_matched": sum(b.users_matched for b in self.batches.values()),
            "average_compatibility": round(avg, 6),
            "group_status_counts": status_counts,
            "last_cycle_date": last.isoformat() if last else None,
        }

    def _batch_for(self, group: Group) -> MatchBatch | None:
        for batch in self.batches.values():
            if batch.id == group.batch_id:
                return batch
        return None

    def _group_view(self, group: Group, membership: Membership | None = None) -> dict[str, Any]:
        batch = self._batch_for(group)
        out = {
            "group_id": group.id,
            "batch_id": group.batch_id,
            "cycle_date": batch.cycle_date.isoformat() if batch else None,
            "member_ids": list(group.member_ids),
            "average_compatibility": group.average_compatibility,
            "status": group.status.value,
            "created_at": group.created_at.isoformat(),
        }
        if membership is not None:
            out["active"] = membership.active
            out["score_contribution"] = membership.score_contribution
            out["joined_at"] = membership.joined_at.isoformat()
        return out

    def get_group(self, group_id: str) -> dict[str, Any] | None:
        group = self.groups.get(group_id)
        return self._group_view(group) if group else None

    def list_member_groups(self, member_id: str) -> list[dict[str, Any]]:
        views = [
            self._group_view(self.groups[gid], ms)
            for (gid, mid), ms in self.memberships.items()
            if mid == member_id and gid in self.groups
        ]
        views.sort(key=lambda v: (v["cycle_date"] or "", v["created_at"]), reverse=True)
        return views

    def set_membership_active(self, group_id: str, member_id: str, active: bool) -> dict[str, Any] | None:
        with self._lock:
            key = (group_id, member_id)
            membership = self.memberships.get(key)
            if membership is None:
                return None
            membership = replace(membership, active=active)
            self.memberships[key] = membership
        return self._group_view(self.groups[group_id], membership)

    def set_group_status(self, group_id: str, status: GroupStatus) -> dict[str, Any] | None:
        with self._lock:
            group = self.groups.get(group_id)
            if group is None:
                return None
            group = replace(group, status=status)
            self.groups[group_id] = group
        return self._group_view(group)

    def record_run(self, entry: RunLogEntry) -> None:
        self.run_log.append(entry)


def _batch_view(batch: MatchBatch) -> dict[str, Any]:
    return {
        "id": batch.id,
        "cycle_date": batch.cycle_date.isoformat(),
        "algorithm_version": batch.algorithm_version,
        "eligible_count": batch.eligible_count,
        "groups_created": batch.groups_created,
        "users_matched": batch.users_matched,
        "started_at": batch.started_at.isoformat(),
        "completed_at": batch.completed_at.isoformat() if batch.completed_at else None,
    }
