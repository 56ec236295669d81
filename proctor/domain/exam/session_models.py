"""Exam session domain models."""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field, model_validator

from proctor.schemas import ExamSession, Participant, ParticipantStatus, SessionState


class ParticipantResponse(BaseModel):
    """Participant as shown to viewers and API callers."""

    participant_id: str
    user_id: str
    username: str
    reg_no: str
    status: ParticipantStatus
    selected_set: str
    ip_address: str
    last_seen: datetime
    score: float | None = None


class SessionResponse(BaseModel):
    """Public session snapshot. Never carries the admin key."""

    session_code: str
    session_name: str
    host_id: str
    sets: dict[str, str]
    state: SessionState
    time_allocated: int
    start_time: datetime | None = None
    end_time: datetime | None = None
    participants: list[ParticipantResponse]

    @classmethod
    def from_session(cls, session: ExamSession) -> "SessionResponse":
        return cls.model_validate(session.model_dump(exclude={"admin_key"}))


class SessionCreateParams(BaseModel):
    """Parameters for creating a session."""

    session_name: str
    host_id: str
    admin_key: str = Field(min_length=1)
    time_allocated: int = Field(default=0, ge=0)
    sets: dict[str, str] = Field(default_factory=dict)


class SessionUpdateParams(BaseModel):
    """Parameters for updating a session.

    Only fields the caller actually supplied are applied; presence is read from
    ``model_fields_set`` so an omitted field is never confused with a zero value.
    """

    UPDATABLE_FIELDS: ClassVar[tuple[str, ...]] = ("session_name", "sets", "time_allocated", "state")

    session_name: str | None = Field(default=None, description="New display name")
    sets: dict[str, str] | None = Field(default=None, description="Replaces the question sets")
    time_allocated: int | None = Field(
        default=None, ge=0, description="New allotted duration in seconds"
    )
    state: SessionState | None = Field(default=None, description="Target lifecycle state")

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"fields cannot be null: {', '.join(nulls)}")
        return self

    def supplied(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.UPDATABLE_FIELDS
            if name in self.model_fields_set
        }


class JoinSessionParams(BaseModel):
    """Self-reported participant details sent on join."""

    user_id: str = Field(min_length=1)
    username: str = ""
    reg_no: str = ""
    selected_set: str = ""


class SessionCreated(BaseModel):
    session_code: str
    # False when the synchronous save failed; the session still exists in memory
    persisted: bool = True


class SessionStarted(BaseModel):
    start_time: datetime
    end_time: datetime | None = None


class JoinResult(BaseModel):
    participant_id: str
    already_joined: bool = False


def new_participant(
    participant_id: str,
    params: JoinSessionParams,
    ip_address: str,
    now: datetime,
) -> Participant:
    return Participant(
        participant_id=participant_id,
        user_id=params.user_id,
        username=params.username,
        reg_no=params.reg_no,
        selected_set=params.selected_set,
        status=ParticipantStatus.ONLINE,
        ip_address=ip_address,
        last_seen=now,
    )
