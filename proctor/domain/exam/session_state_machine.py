"""Session state machine for exam session lifecycle transitions."""

from proctor.schemas import SessionState


class SessionStateMachine:
    """State machine for exam session state transitions.

    Only one transition carries a precondition:
    - WAITING -> ACTIVE through start_session() (session must be WAITING)

    Transitions requested by the examiner through update_session() are not
    restricted: every state may move to every other state, including
    COMPLETE -> WAITING. TRANSITIONS is the single place to narrow that graph.

    Clock rules:
    - Moving WAITING -> ACTIVE stamps start_time (and end_time when a duration is allotted)
    - Any other move leaves start_time / end_time untouched

    A session that reaches ACTIVE without passing WAITING -> ACTIVE directly
    (WAITING -> PAUSED -> ACTIVE, say) has no start_time. It runs unbounded,
    and a later time_allocated change is stored but sets no end_time.
    """

    TRANSITIONS: dict[SessionState, set[SessionState]] = {
        state: set(SessionState) for state in SessionState
    }

    # States start_session() accepts
    STARTABLE_STATES: set[SessionState] = {SessionState.WAITING}

    @classmethod
    def can_transition(cls, current: SessionState, new: SessionState) -> bool:
        """Check if an examiner-directed transition is allowed.

        Args:
            current: Current session state
            new: Target state to transition to

        Returns:
            True if transition is allowed, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def can_start(cls, current: SessionState) -> bool:
        return current in cls.STARTABLE_STATES

    @classmethod
    def starts_clock(cls, current: SessionState, new: SessionState) -> bool:
        """True when moving from current to new should stamp start/end times."""
        return current == SessionState.WAITING and new == SessionState.ACTIVE
