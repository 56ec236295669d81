"""In-memory records held by the session registry and written to the snapshot file."""

from datetime import datetime

from pydantic import BaseModel, Field

from .session_state import ParticipantStatus, SessionState


class Participant(BaseModel):
    """One examinee's membership record within a session."""

    participant_id: str
    user_id: str
    username: str = ""
    reg_no: str = ""
    status: ParticipantStatus = ParticipantStatus.ONLINE
    selected_set: str = ""
    # Audit only, never used for authorization
    ip_address: str = ""
    last_seen: datetime
    score: float | None = None


class ExamSession(BaseModel):
    """One proctored exam room."""

    session_code: str
    session_name: str
    host_id: str
    admin_key: str

    # label -> question set URL
    sets: dict[str, str] = Field(default_factory=dict)

    state: SessionState = SessionState.WAITING

    # Seconds; 0 means unbounded
    time_allocated: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None

    # Join order
    participants: list[Participant] = Field(default_factory=list)

    def find_participant(self, user_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def find_existing_member(self, user_id: str, reg_no: str) -> Participant | None:
        """Match by user_id, or by reg_no when one is given."""
        for participant in self.participants:
            if participant.user_id == user_id or (reg_no and participant.reg_no == reg_no):
                return participant
        return None
