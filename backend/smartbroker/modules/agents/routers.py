# smartbroker/modules/agents/routers.py
from typing import List

from fastapi import APIRouter, Body, Depends, Path, status

from smartbroker.core.security import CurrentActor
from .models import AgentSessionInDB, ChatMessageAPI, ExecuteGoalAPI, SessionFilters
from .orchestrator import AgentOrchestrator, get_agent_orchestrator

agents_router = APIRouter()


@agents_router.post(
    "/execute-goal",
    response_model=AgentSessionInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Start an agent session for a goal",
    tags=["Agents"],
)
async def execute_goal(
    actor: CurrentActor,
    payload: ExecuteGoalAPI = Body(...),
    orchestrator: AgentOrchestrator = Depends(get_agent_orchestrator),
):
    """Returns the new session in `thinking` state. The agent runs in the background; re-read the session to follow it."""
    return await orchestrator.execute_goal(payload, actor)


@agents_router.post("/chat", response_model=AgentSessionInDB, tags=["Agents"])
async def chat_with_agent(
    actor: CurrentActor,
    payload: ChatMessageAPI = Body(...),
    orchestrator: AgentOrchestrator = Depends(get_agent_orchestrator),
):
    return await orchestrator.chat(payload, actor)


@agents_router.get("/sessions", response_model=List[AgentSessionInDB], tags=["Agents"])
async def list_agent_sessions(
    actor: CurrentActor,
    filters: SessionFilters = Depends(),
    orchestrator: AgentOrchestrator = Depends(get_agent_orchestrator),
):
    return await orchestrator.list_sessions(actor, status=filters.status)


@agents_router.get("/sessions/{session_id}", response_model=AgentSessionInDB, tags=["Agents"])
async def get_agent_session(
    actor: CurrentActor,
    session_id: str = Path(...),
    orchestrator: AgentOrchestrator = Depends(get_agent_orchestrator),
):
    return await orchestrator.find_session(session_id, actor)


@agents_router.post("/sessions/{session_id}/archive", response_model=AgentSessionInDB, tags=["Agents"])
async def archive_agent_session(
    actor: CurrentActor,
    session_id: str = Path(...),
    orchestrator: AgentOrchestrator = Depends(get_agent_orchestrator),
):
    return await orchestrator.archive_session(session_id, actor)
