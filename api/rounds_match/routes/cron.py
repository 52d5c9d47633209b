import logging
from typing import Any

from fastapi import APIRouter, Depends, Header

from .. import config
from ..deps import get_orchestrator, http_error_for, validate_cron_secret
from ..errors import DuplicateBatchError, MatchingError
from ..schemas import CronRunResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cron/weekly-matching", response_model=CronRunResponse)
def weekly_matching(
    authorization: str | None = Header(default=None, alias="Authorization"),
    orchestrator=Depends(get_orchestrator),
) -> dict[str, Any]:
    validate_cron_secret(authorization, config.CRON_SECRET)
    try:
        summary = orchestrator.run_cycle()
    except DuplicateBatchError as exc:
        logger.info("[MATCHING] cron trigger skipped: %s", exc.message)
        return {"status": "already_completed", "cycle_date": exc.cycle_date.isoformat()}
    except MatchingError as exc:
        raise http_error_for(exc)
    return {"status": "completed", "cycle_date": summary.cycle_date.isoformat(), "summary": summary.to_dict()}
