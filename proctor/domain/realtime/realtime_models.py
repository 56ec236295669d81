"""Wire models for viewer push connections."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Distinguished topic carrying session-list refresh signals
ALL_TOPIC = "all"


class NotificationType(str, Enum):
    LIST_CHANGED = "ListChanged"
    SESSION_CHANGED = "SessionChanged"
    SUBSCRIBED = "Subscribed"
    UNSUBSCRIBED = "Unsubscribed"
    PING = "Ping"

    def __str__(self) -> str:
        return self.value


class Notification(BaseModel):
    """Outbound message. ``target`` is ``"all"`` or a session code."""

    type: NotificationType
    target: str
    payload: Any = None


class ViewerAction(str, Enum):
    SUBSCRIBE_ALL = "subscribeAll"
    UNSUBSCRIBE_ALL = "unsubscribeAll"
    SUBSCRIBE_SESSION = "subscribeSession"
    UNSUBSCRIBE_SESSION = "unsubscribeSession"
    PONG = "pong"


class ViewerCommand(BaseModel):
    """Inbound control message. Unknown actions parse fine and are ignored later."""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    session_code: str | None = Field(default=None, alias="sessionCode")
