from fastapi import Depends, HTTPException

from .config import NOTIFICATION_CHANNEL
from .database import SessionLocal
from .errors import ErrorKind, MatchingError
from .repo import SqlMatchRepository, SqlRosterSource
from .services.events import LoggingNotifier, OutboxNotifier
from .services.orchestrator import BatchOrchestrator


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def validate_cron_secret(authorization: str | None, cron_secret: str | None) -> None:
    if not cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
    if not authorization or authorization.strip() != f"Bearer {cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def parse_actor_user_id(raw_actor_user_id: str | None) -> str:
    value = (raw_actor_user_id or "").strip()
    if not value:
        raise HTTPException(status_code=401, detail="X-Actor-User-Id header is required")
    return value


def get_repository():
    return SqlMatchRepository(SessionLocal)


def get_roster_source():
    return SqlRosterSource(SessionLocal)


def get_notifier():
    if NOTIFICATION_CHANNEL == "log":
        return LoggingNotifier()
    return OutboxNotifier(SessionLocal)


def get_orchestrator(
    repository=Depends(get_repository),
    roster_source=Depends(get_roster_source),
    notifier=Depends(get_notifier),
) -> BatchOrchestrator:
    return BatchOrchestrator(repository, roster_source, notifier)


def http_error_for(exc: MatchingError) -> HTTPException:
    status = {
        ErrorKind.CONFIGURATION: 400,
        ErrorKind.CONFLICT: 409,
        ErrorKind.TRANSACTIONAL: 500,
    }.get(exc.kind, 500)
    return HTTPException(status_code=status, detail=exc.to_dict())
