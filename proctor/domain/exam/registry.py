"""Authoritative in-memory registry of exam sessions."""

import asyncio
import hmac
from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from proctor.domain.realtime.hub import BroadcastHub
from proctor.domain.realtime.realtime_models import ALL_TOPIC, NotificationType
from proctor.domain.utils.idgen import new_opaque_id, new_session_code
from proctor.schemas import ExamSession, ParticipantStatus, SessionState
from proctor.shared.domain.time_utils import utc_now
from proctor.shared.lock import ReadWriteLock
from proctor.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .session_models import (
    JoinResult,
    JoinSessionParams,
    SessionCreated,
    SessionCreateParams,
    SessionResponse,
    SessionStarted,
    SessionUpdateParams,
    new_participant,
)
from .session_state_machine import SessionStateMachine
from .session_store import SessionStore


class SessionRegistry:
    """Owns every ExamSession and all mutation of them.

    Mutations hold the write side of one reader/writer lock and never await
    while holding it; reads hold the read side. After a mutation commits the
    registry publishes to the hub straight after releasing the lock, with no
    await in between, so notifications leave in commit order.

    Persistence: create_session() saves before returning, every other
    mutation schedules a background save. Saves run one at a time and each
    takes its snapshot when its turn comes, so the file only moves forward.
    A failed save is logged and never rolls back memory.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        hub: BroadcastHub | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sessions: dict[str, ExamSession] = {}
        self._lock = ReadWriteLock()
        self._store = store
        self._hub = hub
        self._clock = clock

        self._save_lock = asyncio.Lock()
        self._pending_saves: set[asyncio.Task] = set()

    # ==================== LIFECYCLE ====================

    async def load(self) -> int:
        """Restore sessions from the store. Returns how many were loaded."""
        if self._store is None:
            return 0

        snapshot = await self._store.load()
        async with self._lock.writer():
            self._sessions = dict(snapshot or {})
            count = len(self._sessions)

        logger.info("Session registry restored {} sessions", count)
        return count

    async def flush(self) -> None:
        """Wait for every scheduled background save to finish."""
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    # ==================== MUTATIONS ====================

    async def create_session(self, params: SessionCreateParams) -> SessionCreated:
        async with self._lock.writer():
            session_code = new_session_code()
            while session_code in self._sessions:
                logger.debug("Session code collision on {}, regenerating", session_code)
                session_code = new_session_code()

            self._sessions[session_code] = ExamSession(
                session_code=session_code,
                session_name=params.session_name,
                host_id=params.host_id,
                admin_key=params.admin_key,
                sets=dict(params.sets),
                time_allocated=params.time_allocated,
                state=SessionState.WAITING,
                participants=[],
            )

        self._publish(ALL_TOPIC, NotificationType.LIST_CHANGED)
        logger.info("Session {} created by host {}", session_code, params.host_id)

        persisted = await self._save()
        return SessionCreated(session_code=session_code, persisted=persisted)

    async def start_session(self, session_code: str, admin_key: str) -> SessionStarted:
        async with self._lock.writer():
            session = self._require_admin(session_code, admin_key)

            if not SessionStateMachine.can_start(session.state):
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_STATE,
                    errmesg=f"Session {session_code} can only be started from waiting state, current state: {session.state}",
                    status_code=HttpStatusCode.BAD_REQUEST,
                )

            self._start_clock(session)
            session.state = SessionState.ACTIVE
            result = SessionStarted(start_time=session.start_time, end_time=session.end_time)
            snapshot = SessionResponse.from_session(session)

        self._publish(session_code, NotificationType.SESSION_CHANGED, snapshot)
        self._publish(ALL_TOPIC, NotificationType.LIST_CHANGED)
        logger.info("Session {} started, ends at {}", session_code, result.end_time)

        self._schedule_save()
        return result

    async def update_session(
        self,
        session_code: str,
        admin_key: str,
        params: SessionUpdateParams,
    ) -> SessionResponse:
        changes = params.supplied()

        async with self._lock.writer():
            session = self._require_admin(session_code, admin_key)

            new_state = changes.get("state")
            if new_state is not None and not SessionStateMachine.can_transition(
                session.state, new_state
            ):
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_STATE,
                    errmesg=f"Invalid state transition: {session.state} -> {new_state}",
                    status_code=HttpStatusCode.BAD_REQUEST,
                )

            if "session_name" in changes:
                session.session_name = changes["session_name"]
            if "sets" in changes:
                session.sets = dict(changes["sets"])
            if "time_allocated" in changes:
                session.time_allocated = changes["time_allocated"]
                if session.state == SessionState.ACTIVE and session.start_time is not None:
                    session.end_time = self._end_time_for(session.start_time, session.time_allocated)
                elif session.state == SessionState.ACTIVE:
                    logger.warning(
                        "Session {} is active without a start time, time_allocated={} sets no deadline",
                        session_code,
                        session.time_allocated,
                    )
            if new_state is not None:
                if SessionStateMachine.starts_clock(session.state, new_state):
                    self._start_clock(session)
                session.state = new_state

            snapshot = SessionResponse.from_session(session)

        self._publish(session_code, NotificationType.SESSION_CHANGED, snapshot)
        self._publish(ALL_TOPIC, NotificationType.LIST_CHANGED)
        logger.info("Session {} updated: {}", session_code, sorted(changes))

        self._schedule_save()
        return snapshot

    async def join_session(
        self,
        session_code: str,
        params: JoinSessionParams,
        ip_address: str,
    ) -> JoinResult:
        async with self._lock.writer():
            session = self._require_session(session_code)

            existing = session.find_existing_member(params.user_id, params.reg_no)
            if existing is not None:
                result = JoinResult(participant_id=existing.participant_id, already_joined=True)
            else:
                participant = new_participant(
                    participant_id=new_opaque_id(),
                    params=params,
                    ip_address=ip_address,
                    now=self._clock(),
                )
                session.participants.append(participant)
                result = JoinResult(participant_id=participant.participant_id)
                snapshot = SessionResponse.from_session(session)

        if result.already_joined:
            logger.info("User {} already in session {}", params.user_id, session_code)
            return result

        self._publish(session_code, NotificationType.SESSION_CHANGED, snapshot)
        logger.info("User {} joined session {} from {}", params.user_id, session_code, ip_address)

        self._schedule_save()
        return result

    async def set_participant_status(
        self,
        session_code: str,
        admin_key: str,
        user_id: str,
        status: ParticipantStatus,
    ) -> SessionResponse:
        async with self._lock.writer():
            session = self._require_admin(session_code, admin_key)

            participant = session.find_participant(user_id)
            if participant is None:
                raise AppError(
                    errcode=AppErrorCode.E_PARTICIPANT_NOT_FOUND,
                    errmesg=f"User {user_id} not found in session {session_code}",
                    status_code=HttpStatusCode.NOT_FOUND,
                )

            participant.status = status
            snapshot = SessionResponse.from_session(session)

        self._publish(session_code, NotificationType.SESSION_CHANGED, snapshot)
        logger.info("Session {} user {} status set to {}", session_code, user_id, status)

        self._schedule_save()
        return snapshot

    # ==================== READS ====================

    async def get_session(self, session_code: str) -> SessionResponse:
        async with self._lock.reader():
            return SessionResponse.from_session(self._require_session(session_code))

    async def list_sessions(self) -> list[SessionResponse]:
        async with self._lock.reader():
            return [SessionResponse.from_session(s) for s in self._sessions.values()]

    async def snapshot(self) -> dict[str, ExamSession]:
        """Deep copy of every record, admin keys included, for persistence."""
        async with self._lock.reader():
            return {code: s.model_copy(deep=True) for code, s in self._sessions.items()}

    # ==================== HELPERS ====================

    def _require_session(self, session_code: str) -> ExamSession:
        session = self._sessions.get(session_code)
        if session is None:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg=f"Session not found: {session_code}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return session

    def _require_admin(self, session_code: str, admin_key: str) -> ExamSession:
        session = self._require_session(session_code)
        if not hmac.compare_digest(session.admin_key.encode(), admin_key.encode()):
            raise AppError(
                errcode=AppErrorCode.E_UNAUTHORIZED,
                errmesg=f"Invalid admin key for session {session_code}",
                status_code=HttpStatusCode.UNAUTHORIZED,
            )
        return session

    def _start_clock(self, session: ExamSession) -> None:
        session.start_time = self._clock()
        session.end_time = self._end_time_for(session.start_time, session.time_allocated)

    @staticmethod
    def _end_time_for(start_time: datetime, time_allocated: int) -> datetime | None:
        if time_allocated > 0:
            return start_time + timedelta(seconds=time_allocated)
        return None

    def _publish(self, topic: str, msg_type: NotificationType, payload=None) -> None:
        if self._hub is not None:
            self._hub.publish(topic, msg_type, payload)

    async def _save(self) -> bool:
        if self._store is None:
            return True

        async with self._save_lock:
            snapshot = await self.snapshot()
            try:
                await self._store.save(snapshot)
            except AppError as e:
                logger.error("{} {} msg={}", e.errcode, e.erresid, e.errmesg)
                return False
        return True

    def _schedule_save(self) -> None:
        if self._store is None:
            return

        task = asyncio.create_task(self._save(), name="session-registry-save")
        self._pending_saves.add(task)
        task.add_done_callback(self._on_save_done)

    def _on_save_done(self, task: asyncio.Task) -> None:
        self._pending_saves.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Background session save crashed")
