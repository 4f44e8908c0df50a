from typing import Any

from pydantic import BaseModel, Field


class SessionStartRequest(BaseModel):
    group: str = Field(..., min_length=1, max_length=16)
    participant_id: str = Field(..., min_length=1, max_length=120)
    participant_name: str = Field(..., min_length=1, max_length=120)


class TextSubmission(BaseModel):
    text: str = Field(..., min_length=1, max_length=50_000)


class JumpRequest(BaseModel):
    stage: int | None = None


class ChatSendRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=200)
    text: str = Field(..., min_length=1, max_length=20_000)
    user_id: str = Field(default="", max_length=120)
    user_name: str = Field(default="", max_length=120)
    role: str = Field(default="user", max_length=40)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AdminLoginRequest(BaseModel):
    password: str = Field(default="", max_length=200)


class PartnerAssignRequest(BaseModel):
    partner_session_key: str | None = Field(default=None, max_length=200)
    partner_id: str | None = Field(default=None, max_length=120)
    partner_name: str | None = Field(default=None, max_length=120)


class BulkDeleteRequest(BaseModel):
    session_keys: list[str] = Field(default_factory=list)


class RosterPayload(BaseModel):
    students: list[dict[str, Any]] = Field(default_factory=list)
    pairings: list[dict[str, Any]] = Field(default_factory=list)
