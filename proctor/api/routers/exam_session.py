"""Exam session endpoints for examiners and participants."""

from fastapi import APIRouter, Query

from proctor.api.dependency import ClientAddress, Registry
from proctor.api.schemas.base import ApiOut
from proctor.api.schemas.exam_session import (
    CreateSessionIn,
    CreateSessionOut,
    JoinSessionIn,
    JoinSessionOut,
    ListSessionsOut,
    MessageOut,
    StartSessionIn,
    StartSessionOut,
    UpdateParticipantStatusIn,
    UpdateSessionIn,
)
from proctor.domain.exam.session_models import (
    JoinSessionParams,
    SessionCreateParams,
    SessionResponse,
)

router = APIRouter(prefix="/exam/session")


@router.post("/create_session")
async def create_session(body: CreateSessionIn, registry: Registry) -> ApiOut[CreateSessionOut]:
    """Create a new exam session in the waiting state."""
    result = await registry.create_session(
        SessionCreateParams(
            session_name=body.session_name,
            host_id=body.host_id,
            admin_key=body.admin_key,
            time_allocated=body.time_allocated,
            sets=body.sets,
        )
    )

    return ApiOut[CreateSessionOut](
        results=CreateSessionOut(session_code=result.session_code, persisted=result.persisted)
    )


@router.post("/start_session")
async def start_session(body: StartSessionIn, registry: Registry) -> ApiOut[StartSessionOut]:
    """Start a waiting session.

    Raises:
        404: Session not found
        401: Admin key mismatch
        400: Session is not waiting
    """
    result = await registry.start_session(body.session_code, body.admin_key)

    return ApiOut[StartSessionOut](
        results=StartSessionOut(start_time=result.start_time, end_time=result.end_time)
    )


@router.post("/update_session")
async def update_session(body: UpdateSessionIn, registry: Registry) -> ApiOut[SessionResponse]:
    """Apply the supplied fields to a session; omitted fields stay as they are."""
    result = await registry.update_session(body.session_code, body.admin_key, body)

    return ApiOut[SessionResponse](results=result)


@router.post("/join_session")
async def join_session(
    body: JoinSessionIn,
    registry: Registry,
    ip_address: ClientAddress,
) -> ApiOut[JoinSessionOut]:
    """Join a session. Joining again with the same user_id or reg_no returns the existing id."""
    result = await registry.join_session(
        body.session_code,
        JoinSessionParams(
            user_id=body.user_id,
            username=body.username,
            reg_no=body.reg_no,
            selected_set=body.selected_set,
        ),
        ip_address,
    )

    return ApiOut[JoinSessionOut](
        results=JoinSessionOut(
            participant_id=result.participant_id,
            already_joined=result.already_joined,
            message="User already in session" if result.already_joined else "Joined successfully",
        )
    )


@router.post("/admin/update_participant_status")
async def update_participant_status(
    body: UpdateParticipantStatusIn,
    registry: Registry,
) -> ApiOut[MessageOut]:
    """Set a participant's status, matched by user_id."""
    await registry.set_participant_status(
        body.session_code, body.admin_key, body.user_id, body.status
    )

    return ApiOut[MessageOut](results=MessageOut(message="User status updated successfully"))


@router.get("/get_session")
async def get_session(
    registry: Registry,
    session_code: str = Query(..., description="Session code to retrieve"),
) -> ApiOut[SessionResponse]:
    """Current snapshot of one session, for polling or catching up after subscribing."""
    return ApiOut[SessionResponse](results=await registry.get_session(session_code))


@router.get("/list_sessions")
async def list_sessions(registry: Registry) -> ApiOut[ListSessionsOut]:
    """Every known session, whatever its state."""
    return ApiOut[ListSessionsOut](
        results=ListSessionsOut(sessions=await registry.list_sessions())
    )
