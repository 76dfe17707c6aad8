import uuid
from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=True)
    university = Column(String, nullable=True)
    year = Column(String, nullable=True)
    preferred_subjects = Column(ARRAY(String), nullable=True)
    availability = Column(JSONB, nullable=True)
    study_style = Column(String, nullable=True)
    study_goals = Column(String, nullable=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    last_match_cycle_at = Column(DateTime(timezone=True), nullable=True)
    total_matches = Column(Integer, nullable=False, default=0)
    successful_matches = Column(Integer, nullable=False, default=0)
    avg_messages_per_match = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_users_eligibility", "onboarding_completed", "last_match_cycle_at"),
    )


class Match(Base):
    __tablename__ = "matches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user1_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user2_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    match_type = Column(String, nullable=False, default="auto")
    status = Column(String, nullable=False, default="active")
    matched_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    messages_exchanged = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    study_session_scheduled = Column(Boolean, nullable=False, default=False)
    unmatched_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("user1_id <> user2_id", name="ck_matches_no_self_pair"),
    )


class MatchAnalytics(Base):
    __tablename__ = "match_analytics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True)
    compatibility_score = Column(Integer, nullable=False)
    score_breakdown = Column(JSONB, nullable=False)
    success_score = Column(Float, nullable=False, default=0.0)
    success_factors = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), nullable=True)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSONB, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_match_event_match_id", "match_id"),)
