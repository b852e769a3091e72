from typing import Any
from pydantic import BaseModel, Field


class GroupMemberOut(BaseModel):
    user_id: str
    name: str
    specialty: str | None = None
    city: str | None = None


class CompatibilityOut(BaseModel):
    percentage: int
    description: str
    level: str


class MatchGroupOut(BaseModel):
    group_id: str
    group_name: str
    member_count: int
    average_score: float
    compatibility: CompatibilityOut
    members: list[GroupMemberOut] = Field(default_factory=list)


class MatchingRunResponse(BaseModel):
    success: bool = True
    week_start_date: str
    groups_created: int
    message: str
    skipped: bool = False
    persisted: bool = True
    eligible_users: int = 0
    unmatched_users: int = 0
    stats: dict[str, Any] = Field(default_factory=dict)
    excluded: dict[str, str] = Field(default_factory=dict)
    groups: list[MatchGroupOut] = Field(default_factory=list)
    persist_report: dict[str, Any] = Field(default_factory=dict)
    deleted_counts: dict[str, int] = Field(default_factory=dict)
