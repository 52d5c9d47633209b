from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol, Sequence

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from .database import SessionLocal
from .entities import Group, GroupStatus, MatchBatch, Member, Membership, RunLogEntry, as_date, as_datetime
from .errors import DuplicateBatchError
from .services.events import log_matching_run

logger = logging.getLogger(__name__)


@dataclass
class TransactionHandle:
    cycle_date: date
    session: Any = None
    staged: dict[str, list[Any]] = field(default_factory=dict)
    closed: bool = False


class RosterSource(Protocol):
    def list_roster(self) -> list[Member]: ...


class MatchRepository(Protocol):
    def batch_exists(self, cycle_date: date) -> bool: ...

    def begin_batch(self, cycle_date: date) -> TransactionHandle: ...

    def insert_batch(self, handle: TransactionHandle, batch: MatchBatch) -> None: ...

    def insert_group(self, handle: TransactionHandle, group: Group, memberships: Sequence[Membership]) -> None: ...

    def mark_matched(self, handle: TransactionHandle, member_ids: Sequence[str], matched_at: datetime) -> None: ...

    def commit(self, handle: TransactionHandle) -> None: ...

    def rollback(self, handle: TransactionHandle) -> None: ...

    def get_batch(self, cycle_date: date) -> MatchBatch | None: ...

    def list_batches(self, limit: int = 20) -> list[dict[str, Any]]: ...

    def matching_stats(self) -> dict[str, Any]: ...

    def get_group(self, group_id: str) -> dict[str, Any] | None: ...

    def list_member_groups(self, member_id: str) -> list[dict[str, Any]]: ...

    def set_membership_active(self, group_id: str, member_id: str, active: bool) -> dict[str, Any] | None: ...

    def set_group_status(self, group_id: str, status: GroupStatus) -> dict[str, Any] | None: ...

    def record_run(self, entry: RunLogEntry) -> None: ...


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _json_list(value: Any) -> list[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _batch_from_row(row: dict[str, Any]) -> MatchBatch:
    return MatchBatch(
        id=str(row["id"]),
        cycle_date=as_date(row["cycle_date"]),
        algorithm_version=str(row["algorithm_version"]),
        eligible_count=int(row["eligible_count"] or 0),
        groups_created=int(row["groups_created"] or 0),
        users_matched=int(row["users_matched"] or 0),
        started_at=as_datetime(row["started_at"]),
        completed_at=as_datetime(row.get("completed_at")),
    )


def _batch_view(row: dict[str, Any]) -> dict[str, Any]:
    batch = _batch_from_row(row)
    return {
        "id": batch.id,
        "cycle_date": batch.cycle_date.isoformat() if batch.cycle_date else None,
        "algorithm_version": batch.algorithm_version,
        "eligible_count": batch.eligible_count,
        "groups_created": batch.groups_created,
        "users_matched": batch.users_matched,
        "started_at": _ts(batch.started_at),
        "completed_at": _ts(batch.completed_at),
    }


def _group_view(row: dict[str, Any]) -> dict[str, Any]:
    out = {
        "group_id": str(row["group_id"]),
        "batch_id": str(row["batch_id"]),
        "cycle_date": as_date(row.get("cycle_date")).isoformat() if row.get("cycle_date") else None,
        "member_ids": _json_list(row.get("member_ids")),
        "average_compatibility": float(row.get("average_compatibility") or 0.0),
        "status": str(row.get("status") or GroupStatus.CREATED.value),
        "created_at": _ts(as_datetime(row.get("created_at"))),
    }
    if "active" in row:
        out["active"] = bool(row["active"])
        out["score_contribution"] = float(row.get("score_contribution") or 0.0)
        out["joined_at"] = _ts(as_datetime(row.get("joined_at")))
    return out


_GROUP_SELECT = """
    SELECT g.id AS group_id, g.batch_id, b.cycle_date, g.member_ids, g.average_compatibility, g.status, g.created_at
    FROM match_group g
    JOIN match_batch b ON b.id = g.batch_id
"""


class SqlMatchRepository:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or SessionLocal

    def batch_exists(self, cycle_date: date) -> bool:
        with self._session_factory() as db:
            row = db.execute(
                text("SELECT 1 AS found FROM match_batch WHERE cycle_date=:cycle_date LIMIT 1"),
                {"cycle_date": cycle_date.isoformat()},
            ).mappings().first()
        return row is not None

    def begin_batch(self, cycle_date: date) -> TransactionHandle:
        return TransactionHandle(cycle_date=cycle_date, session=self._session_factory())

    def insert_batch(self, handle: TransactionHandle, batch: MatchBatch) -> None:
        try:
            handle.session.execute(
                text(
                    """
                    INSERT INTO match_batch
                    (id, cycle_date, algorithm_version, eligible_count, groups_created, users_matched, started_at, completed_at)
                    VALUES (:id, :cycle_date, :algorithm_version, :eligible_count, :groups_created, :users_matched, :started_at, :completed_at)
                    """
                ),
                {
                    "id": batch.id,
                    "cycle_date": batch.cycle_date.isoformat(),
                    "algorithm_version": batch.algorithm_version,
                    "eligible_count": batch.eligible_count,
                    "groups_created": batch.groups_created,
                    "users_matched": batch.users_matched,
                    "started_at": _ts(batch.started_at),
                    "completed_at": _ts(batch.completed_at),
                },
            )
        except IntegrityError as exc:
            raise DuplicateBatchError(batch.cycle_date, cause=exc)

    def insert_group(self, handle: TransactionHandle, group: Group, memberships: Sequence[Membership]) -> None:
        db = handle.session
        db.execute(
            text(
                """
                INSERT INTO match_group (id, batch_id, member_ids, average_compatibility, status, created_at)
                VALUES (:id, :batch_id, :member_ids, :average_compatibility, :status, :created_at)
                """
            ),
            {
                "id": group.id,
                "batch_id": group.batch_id,
                "member_ids": json.dumps(list(group.member_ids)),
                "average_compatibility": group.average_compatibility,
                "status": group.status.value,
                "created_at": _ts(group.created_at),
            },
        )
        for membership in memberships:
            db.execute(
                text(
                    """
                    INSERT INTO group_membership (group_id, member_id, batch_id, score_contribution, joined_at, active)
                    VALUES (:group_id, :member_id, :batch_id, :score_contribution, :joined_at, :active)
                    """
                ),
                {
                    "group_id": membership.group_id,
                    "member_id": membership.member_id,
                    "batch_id": group.batch_id,
                    "score_contribution": membership.score_contribution,
                    "joined_at": _ts(membership.joined_at),
                    "active": membership.active,
                },
            )

    def mark_matched(self, handle: TransactionHandle, member_ids: Sequence[str], matched_at: datetime) -> None:
        if not member_ids:
            return
        handle.session.execute(
            text("UPDATE member_profile SET last_matched_at=:matched_at WHERE id=:id"),
            [{"id": mid, "matched_at": _ts(matched_at)} for mid in member_ids],
        )

    def commit(self, handle: TransactionHandle) -> None:
        try:
            handle.session.commit()
        except IntegrityError as exc:
            handle.session.rollback()
            logger.warning("[MATCHING] commit rejected for cycle=%s: %s", handle.cycle_date, exc.orig)
            raise DuplicateBatchError(handle.cycle_date, cause=exc)
        finally:
            if not handle.closed:
                handle.session.close()
                handle.closed = True

    def rollback(self, handle: TransactionHandle) -> None:
        if handle.closed:
            return
        try:
            handle.session.rollback()
        finally:
            handle.session.close()
            handle.closed = True

    def get_batch(self, cycle_date: date) -> MatchBatch | None:
        with self._session_factory() as db:
            row = db.execute(
                text("SELECT * FROM match_batch WHERE cycle_date=:cycle_date"),
                {"cycle_date": cycle_date.isoformat()},
            ).mappings().first()
        return _batch_from_row(dict(row)) if row else None

    def list_batches(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text("SELECT * FROM match_batch ORDER BY cycle_date DESC LIMIT :limit"),
                {"limit": max(1, min(200, int(limit)))},
            ).mappings().all()
        return [_batch_view(dict(r)) for r in rows]

    def matching_stats(self) -> dict[str, Any]:
        with self._session_factory() as db:
            totals = db.execute(
                text(
                    """
                    SELECT
                      COUNT(1) AS total_batches,
                      COALESCE(SUM(groups_created), 0) AS total_groups,
                      COALESCE(SUM(users_matched), 0) AS total_members_matched,
                      MAX(cycle_date) AS last_cycle_date
                    FROM match_batch
                    """
                )
            ).mappings().first() or {}
            avg_row = db.execute(text("SELECT AVG(average_compatibility) AS avg_score FROM match_group")).mappings().first() or {}
            status_rows = db.execute(
                text("SELECT status, COUNT(1) AS c FROM match_group GROUP BY status")
            ).mappings().all()

        last_cycle = as_date(totals.get("last_cycle_date"))
        return {
            "total_batches": int(totals.get("total_batches") or 0),
            "total_groups": int(totals.get("total_groups") or 0),
            "total_members_matched": int(totals.get("total_members_matched") or 0),
            "average_compatibility": round(float(avg_row.get("avg_score") or 0.0), 6),
            "group_status_counts": {str(r["status"]): int(r["c"]) for r in status_rows},
            "last_cycle_date": last_cycle.isoformat() if last_cycle else None,
        }

    def get_group(self, group_id: str) -> dict[str, Any] | None:
        with self._session_factory() as db:
            row = db.execute(text(_GROUP_SELECT + " WHERE g.id=:group_id"), {"group_id": group_id}).mappings().first()
        return _group_view(dict(row)) if row else None

    def list_member_groups(self, member_id: str) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT g.id AS group_id, g.batch_id, b.cycle_date, g.member_ids, g.average_compatibility, g.status, g.created_at,
                           gm.active, gm.score_contribution, gm.joined_at
                    FROM group_membership gm
                    JOIN match_group g ON g.id = gm.group_id
                    JOIN match_batch b ON b.id = g.batch_id
                    WHERE gm.member_id = :member_id
                    ORDER BY b.cycle_date DESC, g.created_at DESC
                    """
                ),
                {"member_id": member_id},
            ).mappings().all()
        return [_group_view(dict(r)) for r in rows]

    def set_membership_active(self, group_id: str, member_id: str, active: bool) -> dict[str, Any] | None:
        with self._session_factory() as db:
            res = db.execute(
                text("UPDATE group_membership SET active=:active WHERE group_id=:group_id AND member_id=:member_id"),
                {"active": active, "group_id": group_id, "member_id": member_id},
            )
            db.commit()
        if int(res.rowcount or 0) == 0:
            return None
        for view in self.list_member_groups(member_id):
            if view["group_id"] == group_id:
                return view
        return None

    def set_group_status(self, group_id: str, status: GroupStatus) -> dict[str, Any] | None:
        with self._session_factory() as db:
            res = db.execute(
                text("UPDATE match_group SET status=:status WHERE id=:group_id"),
                {"status": status.value, "group_id": group_id},
            )
            db.commit()
        if int(res.rowcount or 0) == 0:
            return None
        return self.get_group(group_id)

    def record_run(self, entry: RunLogEntry) -> None:
        with self._session_factory() as db:
            log_matching_run(db, entry)
            db.commit()


class SqlRosterSource:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or SessionLocal

    def list_roster(self) -> list[Member]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT id, first_name, specialty, interests, city, gender, availability_slots,
                           is_verified, is_paid, onboarding_completed, last_matched_at, specialty_preference
                    FROM member_profile
                    ORDER BY created_at ASC, id ASC
                    """
                )
            ).mappings().all()
        return [Member.from_mapping(dict(r)) for r in rows]


def upsert_member_profiles(db, members: Sequence[Member]) -> int:
    count = 0
    for member in members:
        row = member.to_row()
        params = {
            **row,
            "interests": json.dumps(row["interests"]),
            "availability_slots": json.dumps(row["availability_slots"]),
            "last_matched_at": _ts(member.last_matched_at),
            "specialty_preference": row["specialty_preference"] or "no-preference",
        }
        res = db.execute(
            text(
                """
                UPDATE member_profile
                SET first_name=:first_name, specialty=:specialty, interests=:interests, city=:city, gender=:gender,
                    availability_slots=:availability_slots, is_verified=:is_verified, is_paid=:is_paid,
                    onboarding_completed=:onboarding_completed, last_matched_at=:last_matched_at,
                    specialty_preference=:specialty_preference
                WHERE id=:id
                """
            ),
            params,
        )
        if int(res.rowcount or 0) == 0:
            db.execute(
                text(
                    """
                    INSERT INTO member_profile
                    (id, first_name, specialty, interests, city, gender, availability_slots, is_verified, is_paid,
                     onboarding_completed, last_matched_at, specialty_preference, created_at)
                    VALUES (:id, :first_name, :specialty, :interests, :city, :gender, :availability_slots, :is_verified, :is_paid,
                            :onboarding_completed, :last_matched_at, :specialty_preference, :created_at)
                    """
                ),
                {**params, "created_at": datetime.now().astimezone().isoformat()},
            )
        count += 1
    return count
