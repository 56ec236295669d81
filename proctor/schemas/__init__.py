"""Registry record schemas."""

from .exam_session import ExamSession, Participant
from .session_state import ParticipantStatus, SessionState

__all__ = [
    "ExamSession",
    "Participant",
    "ParticipantStatus",
    "SessionState",
]
