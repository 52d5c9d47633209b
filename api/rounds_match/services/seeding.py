import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from ..entities import Gender, Member, SpecialtyPreference
from ..repo import upsert_member_profiles

SPECIALTIES = [
    "Emergency Medicine",
    "Internal Medicine",
    "Family Medicine",
    "Surgery",
    "Cardiology",
    "Pediatrics",
    "Psychiatry",
    "Radiology",
    "Anesthesiology",
    "Orthopedics",
]

INTERESTS = [
    "Research",
    "Medical Education",
    "Public Health",
    "Healthcare Technology",
    "Global Health",
    "Sports Medicine",
    "AI",
    "Wellness",
    "Fitness",
    "Reading",
    "Travel",
    "Cooking",
    "Hiking",
    "Music",
    "Photography",
]

CITIES = ["New York", "Boston", "Chicago", "Toronto", "London"]

AVAILABILITY_SLOTS = [
    "weekday_mornings",
    "weekday_evenings",
    "weekend_mornings",
    "weekend_afternoons",
    "weekend_evenings",
]

FIRST_NAMES = ["Amara", "Ben", "Chen", "Dana", "Eli", "Farah", "Gabe", "Hana", "Ivan", "Jules", "Kofi", "Lena"]


def synthetic_roster(n_members: int = 60, seed: int = 42, now: datetime | None = None) -> list[Member]:
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    preferences = [SpecialtyPreference.NO_PREFERENCE] * 6 + [SpecialtyPreference.SAME, SpecialtyPreference.DIFFERENT]

    members = []
    for idx in range(n_members):
        recently_matched = rng.random() < 0.15
        members.append(
            Member(
                id=str(uuid.UUID(int=rng.getrandbits(128), version=4)),
                first_name=rng.choice(FIRST_NAMES),
                specialty=rng.choice(SPECIALTIES),
                interests=frozenset(rng.sample(INTERESTS, rng.randint(2, 6))),
                city=CITIES[idx % len(CITIES)] if rng.random() < 0.8 else rng.choice(CITIES),
                gender=Gender.MALE if idx % 2 == 0 else Gender.FEMALE,
                availability_slots=frozenset(rng.sample(AVAILABILITY_SLOTS, rng.randint(1, 3))),
                verified=rng.random() < 0.95,
                paid=rng.random() < 0.9,
                onboarding_complete=rng.random() < 0.95,
                last_matched_at=now - timedelta(weeks=rng.randint(1, 5)) if recently_matched else None,
                specialty_preference=rng.choice(preferences),
            )
        )
    return members


def seed_member_profiles(db, n_members: int = 60, seed: int = 42, reset: bool = False) -> dict[str, Any]:
    if reset:
        db.execute(text("DELETE FROM group_membership"))
        db.execute(text("DELETE FROM match_group"))
        db.execute(text("DELETE FROM match_batch"))
        db.execute(text("DELETE FROM notifications_outbox"))
        db.execute(text("DELETE FROM matching_run_log"))
        db.execute(text("DELETE FROM member_profile"))

    roster = synthetic_roster(n_members, seed)
    written = upsert_member_profiles(db, roster)
    db.commit()
    return {
        "members_written": written,
        "verified": sum(1 for m in roster if m.verified),
        "paid": sum(1 for m in roster if m.paid),
        "in_cooldown": sum(1 for m in roster if m.last_matched_at is not None),
        "reset": reset,
    }
