import uuid
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from .database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    medical_specialty = Column(JSONB, nullable=True)
    specialty = Column(String, nullable=True)
    specialty_preference = Column(String, nullable=True)
    city = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    gender_preference = Column(String, nullable=True)
    age = Column(Integer, nullable=True)
    sports_activities = Column(JSONB, nullable=True)
    music_preferences = Column(JSONB, nullable=True)
    movie_tv_preferences = Column(JSONB, nullable=True)
    other_interests = Column(JSONB, nullable=True)
    interests = Column(JSONB, nullable=True)
    availability_slots = Column(JSONB, nullable=True)
    activity_level = Column(String, nullable=True)
    conversation_style = Column(String, nullable=True)
    social_energy_level = Column(String, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    active_group_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Match(Base):
    __tablename__ = "matches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")
    match_week = Column(Date, nullable=False)
    average_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_matches_match_week", "match_week"),)


class MatchMember(Base):
    __tablename__ = "match_members"

    match_id = Column(UUID(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    compatibility_score = Column(Float, nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_match_members_user_id", "user_id"),)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    message_type = Column(String, nullable=False, default="text")
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchingLog(Base):
    __tablename__ = "matching_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    week_start_date = Column(Date, nullable=False)
    trigger = Column(String, nullable=False)
    algorithm_version = Column(String, nullable=False)
    success = Column(Boolean, nullable=False)
    groups_created = Column(Integer, nullable=False, default=0)
    eligible_users = Column(Integer, nullable=False, default=0)
    unmatched_users = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Float, nullable=False, default=0.0)
    reason = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    details = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    match_id = Column(UUID(as_uuid=True), nullable=True)
    week_start_date = Column(Date, nullable=False)
    event_type = Column(String, nullable=False)
    payload = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_match_event_week", "week_start_date"),)
