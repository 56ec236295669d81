from datetime import datetime

from pydantic import BaseModel, Field

from proctor.domain.exam.session_models import SessionResponse, SessionUpdateParams
from proctor.schemas import ParticipantStatus


class CreateSessionIn(BaseModel):
    session_name: str = Field(description="Display name of the exam session")
    host_id: str = Field(description="Identifier of the examiner hosting the session")
    admin_key: str = Field(min_length=1, description="Shared secret required for admin operations")
    time_allocated: int = Field(
        default=0, ge=0, description="Allotted duration in seconds, 0 for unbounded"
    )
    sets: dict[str, str] = Field(
        default_factory=dict, description="Question set label to resource URL"
    )


class CreateSessionOut(BaseModel):
    session_code: str = Field(description="Short code participants use to join")
    persisted: bool = Field(description="Whether the session was written to disk")
    message: str = "Session created successfully"


class StartSessionIn(BaseModel):
    session_code: str
    admin_key: str


class StartSessionOut(BaseModel):
    start_time: datetime
    end_time: datetime | None = None
    message: str = "Exam started successfully"


class UpdateSessionIn(SessionUpdateParams):
    session_code: str
    admin_key: str


class JoinSessionIn(BaseModel):
    session_code: str
    user_id: str = Field(min_length=1, description="Participant's external user identifier")
    username: str = ""
    reg_no: str = Field(default="", description="Registration number, unique per session when set")
    selected_set: str = Field(default="", description="Label of the chosen question set")


class JoinSessionOut(BaseModel):
    participant_id: str
    already_joined: bool
    message: str


class UpdateParticipantStatusIn(BaseModel):
    session_code: str
    admin_key: str
    user_id: str
    status: ParticipantStatus


class MessageOut(BaseModel):
    message: str


class ListSessionsOut(BaseModel):
    sessions: list[SessionResponse]
