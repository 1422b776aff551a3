# smartbroker/modules/agents/models.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from smartbroker.core.authorization import ResourceRef
from smartbroker.models.api_common import DocumentModel, MongoModel, PyObjectId, utcnow

AGENT_TYPES = Literal["general_assistant", "lead_qualifier", "property_advisor"]
SESSION_STATUSES = Literal["active", "completed", "archived", "error"]
AGENT_STATUSES = Literal["idle", "thinking", "executing", "waiting", "completed", "error", "max_turns_exceeded"]
MESSAGE_ROLES = Literal["user", "assistant", "system"]

# Sessões nesses estados não aceitam novas mensagens
TERMINAL_SESSION_STATUSES = frozenset({"completed", "archived", "error"})


class AgentMessage(BaseModel):
    role: MESSAGE_ROLES
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentSessionInDB(DocumentModel):
    user_id: PyObjectId
    agency_id: PyObjectId
    agent_type: AGENT_TYPES = "general_assistant"
    title: str
    status: SESSION_STATUSES = "active"
    agent_status: AGENT_STATUSES = "idle"
    context: Dict[str, Any] = Field(default_factory=dict)
    messages: List[AgentMessage] = Field(default_factory=list)
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def resource_ref(self) -> ResourceRef:
        return ResourceRef(agency_id=self.agency_id, owner_id=self.user_id)

    def transcript(self) -> List[Dict[str, Any]]:
        return [{"role": m.role, "content": m.content} for m in self.messages]


class ExecuteGoalAPI(BaseModel):
    goal: str = Field(..., min_length=1, max_length=4000)
    agent_type: AGENT_TYPES = "general_assistant"
    context: Dict[str, Any] = Field(default_factory=dict)


class ChatMessageAPI(MongoModel):
    session_id: PyObjectId
    message: str = Field(..., min_length=1, max_length=4000)


class SessionFilters(BaseModel):
    status: Optional[SESSION_STATUSES] = None
