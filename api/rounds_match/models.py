import uuid
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from .database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class MemberProfile(Base):
    __tablename__ = "member_profile"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    first_name = Column(String, nullable=True)
    specialty = Column(String, nullable=True)
    interests = Column(JSON, nullable=True)
    city = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    availability_slots = Column(JSON, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    last_matched_at = Column(DateTime(timezone=True), nullable=True)
    specialty_preference = Column(String, nullable=False, default="no-preference")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchBatchRow(Base):
    __tablename__ = "match_batch"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    cycle_date = Column(Date, nullable=False)
    algorithm_version = Column(String, nullable=False)
    eligible_count = Column(Integer, nullable=False, default=0)
    groups_created = Column(Integer, nullable=False, default=0)
    users_matched = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("cycle_date", name="uq_match_batch_cycle_date"),)


class MatchGroupRow(Base):
    __tablename__ = "match_group"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    batch_id = Column(String(36), ForeignKey("match_batch.id", ondelete="CASCADE"), nullable=False)
    member_ids = Column(JSON, nullable=False)
    average_compatibility = Column(Float, nullable=False)
    status = Column(String, nullable=False, default="created")
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_match_group_batch_id", "batch_id"),)


class GroupMembershipRow(Base):
    __tablename__ = "group_membership"

    group_id = Column(String(36), ForeignKey("match_group.id", ondelete="CASCADE"), primary_key=True)
    member_id = Column(String(36), primary_key=True)
    batch_id = Column(String(36), ForeignKey("match_batch.id", ondelete="CASCADE"), nullable=False)
    score_contribution = Column(Float, nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("batch_id", "member_id", name="uq_membership_batch_member"),
        Index("idx_group_membership_member_id", "member_id"),
    )


class NotificationOutbox(Base):
    __tablename__ = "notifications_outbox"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    notification_type = Column(String, nullable=False)
    group_id = Column(String(36), nullable=True)
    payload_json = Column(JSON, nullable=False)
    status = Column(String, nullable=False, default="pending")
    idempotency_key = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class MatchingRunLog(Base):
    __tablename__ = "matching_run_log"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    cycle_date = Column(Date, nullable=False)
    status = Column(String, nullable=False)
    eligible_count = Column(Integer, nullable=False, default=0)
    groups_created = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_matching_run_log_cycle_date", "cycle_date"),)
