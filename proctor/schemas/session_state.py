"""Common enums used across schemas."""

from enum import Enum


class SessionState(str, Enum):
    """Exam session lifecycle states.

    WAITING → ACTIVE is the only transition with a precondition (start_session
    requires WAITING). Every other move between ACTIVE, NETWORK_LOSS, PAUSED
    and COMPLETE is directed by the examiner through update_session.

    State Descriptions:
    - WAITING: Session created, participants may join. Set by create_session().
    - ACTIVE: Exam running; start_time is set and end_time too when a duration was allotted.
    - NETWORK_LOSS: Examiner flagged a connectivity incident for the room.
    - PAUSED: Exam clock held by the examiner.
    - COMPLETE: Exam finished.
    """

    WAITING = "waiting"
    ACTIVE = "active"
    NETWORK_LOSS = "network_loss"
    PAUSED = "paused"
    COMPLETE = "complete"

    def __str__(self) -> str:
        return self.value


class ParticipantStatus(str, Enum):
    """Status of one participant within a session. Any value may follow any other."""

    ONLINE = "online"
    OFFLINE = "offline"
    SUBMITTED = "submitted"
    FLAGGED = "flagged"

    def __str__(self) -> str:
        return self.value


__all__ = ["ParticipantStatus", "SessionState"]
