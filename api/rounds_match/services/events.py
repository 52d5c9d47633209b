import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Protocol, Sequence

from sqlalchemy import text

from ..entities import Group, Member, RunLogEntry
from .welcome import build_welcome_message, compatibility_percentage, describe_compatibility

logger = logging.getLogger(__name__)

GROUPS_FORMED = "groups_formed"


class Notifier(Protocol):
    def notify(self, event: dict[str, Any]) -> None: ...


def groups_formed_event(group: Group, members: Sequence[Member], cycle_date: date) -> dict[str, Any]:
    percentage = compatibility_percentage(group.average_compatibility)
    return {
        "type": GROUPS_FORMED,
        "group_id": group.id,
        "batch_id": group.batch_id,
        "member_ids": list(group.member_ids),
        "average_compatibility": group.average_compatibility,
        "compatibility": describe_compatibility(percentage),
        "cycle_date": cycle_date.isoformat(),
        "welcome_message": build_welcome_message(members),
    }


class LoggingNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def notify(self, event: dict[str, Any]) -> None:
        self.sent.append(event)
        logger.info(
            "[NOTIFY] %s group_id=%s members=%s",
            event.get("type"),
            event.get("group_id"),
            ",".join(event.get("member_ids") or []),
        )


class OutboxNotifier:
    """Writes one outbox row per event; a repeated event is a no-op."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def notify(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("type") or GROUPS_FORMED)
        group_id = str(event.get("group_id") or "")
        with self._session_factory() as db:
            db.execute(
                text(
                    """
                    INSERT INTO notifications_outbox
                    (id, notification_type, group_id, payload_json, status, idempotency_key, created_at)
                    VALUES (:id, :notification_type, :group_id, :payload_json, 'pending', :idempotency_key, :created_at)
                    ON CONFLICT (idempotency_key) DO NOTHING
                    """
                ),
                {
                    "id": str(uuid.uuid4()),
                    "notification_type": event_type,
                    "group_id": group_id or None,
                    "payload_json": json.dumps(event),
                    "idempotency_key": f"{group_id}:{event_type}",
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            db.commit()


def log_matching_run(db, entry: RunLogEntry) -> None:
    db.execute(
        text(
            """
            INSERT INTO matching_run_log (id, cycle_date, status, eligible_count, groups_created, reason, created_at)
            VALUES (:id, :cycle_date, :status, :eligible_count, :groups_created, :reason, :created_at)
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "cycle_date": entry.cycle_date.isoformat(),
            "status": entry.status,
            "eligible_count": entry.eligible_count,
            "groups_created": entry.groups_created,
            "reason": entry.reason,
            "created_at": entry.created_at.isoformat(),
        },
    )
