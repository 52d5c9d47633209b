import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

ALGORITHM_VERSION = os.getenv("ALGORITHM_VERSION", "greedy-seed-v1")
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
CRON_SECRET = os.getenv("CRON_SECRET", "")
MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "America/New_York")
COOLDOWN_WEEKS = int(os.getenv("COOLDOWN_WEEKS", "6"))
MIN_GROUP_SIZE = int(os.getenv("MIN_GROUP_SIZE", "3"))
MAX_GROUP_SIZE = int(os.getenv("MAX_GROUP_SIZE", "4"))
MIN_COMPATIBILITY = float(os.getenv("MIN_COMPATIBILITY", "0.55"))
SEED_NEIGHBORHOOD_K = int(os.getenv("SEED_NEIGHBORHOOD_K", "8"))
NOTIFICATION_CHANNEL = os.getenv("NOTIFICATION_CHANNEL", "outbox")

DEFAULT_SCORING_WEIGHTS: dict[str, Any] = {
    "specialty": float(os.getenv("SPECIALTY_W", "0.30")),
    "interests": float(os.getenv("INTERESTS_W", "0.40")),
    "city": float(os.getenv("CITY_W", "0.20")),
    "availability": float(os.getenv("AVAILABILITY_W", "0.10")),
}

if os.getenv("SCORING_WEIGHTS_JSON"):
    try:
        DEFAULT_SCORING_WEIGHTS.update(json.loads(os.getenv("SCORING_WEIGHTS_JSON", "{}")))
    except json.JSONDecodeError:
        logger.warning("[CONFIG] SCORING_WEIGHTS_JSON is not valid JSON; using default weights")
