# smartbroker/modules/agents/repository.py
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from smartbroker.core.database import get_database
from smartbroker.core.repository import BaseRepository
from smartbroker.models.api_common import utcnow
from .models import TERMINAL_SESSION_STATUSES, AgentMessage, AgentSessionInDB

# Sessões encerradas não recebem novas mensagens nem mudanças de estado do agente
OPEN_SESSION_GUARD = {"status": {"$nin": sorted(TERMINAL_SESSION_STATUSES)}}


class AgentSessionRepository(BaseRepository[AgentSessionInDB]):
    model = AgentSessionInDB
    collection_name = "agent_sessions"

    async def append_messages(
        self,
        session_id: ObjectId,
        messages: List[AgentMessage],
        expected_version: Optional[int] = None,
        **fields: Any,
    ) -> Optional[AgentSessionInDB]:
        """Anexa mensagens e incrementa ``message_count`` na mesma operação."""
        set_fields: Dict[str, Any] = dict(fields)
        if messages:
            set_fields["last_message_at"] = messages[-1].timestamp
        operations: Dict[str, Dict[str, Any]] = {
            "$push": {"messages": {"$each": [m.model_dump() for m in messages]}},
            "$inc": {"message_count": len(messages)},
        }
        if set_fields:
            operations["$set"] = set_fields
        return await self.apply(session_id, operations, expected_version=expected_version, guard=OPEN_SESSION_GUARD)

    async def set_state(
        self, session_id: ObjectId, expected_version: Optional[int] = None, open_only: bool = False, **fields: Any
    ) -> Optional[AgentSessionInDB]:
        guard = OPEN_SESSION_GUARD if open_only else None
        return await self.apply(session_id, {"$set": fields}, expected_version=expected_version, guard=guard)

    async def mark_failed(self, session_id: ObjectId, error: str) -> Optional[AgentSessionInDB]:
        # Escrita de registro de erro, sem checagem de versão
        return await self.apply(
            session_id, {"$set": {"agent_status": "idle", "last_error": error, "last_message_at": utcnow()}}
        )


async def get_agent_session_repository(db: AsyncIOMotorDatabase = Depends(get_database)) -> AgentSessionRepository:
    return AgentSessionRepository(db)
