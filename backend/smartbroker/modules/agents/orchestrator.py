# smartbroker/modules/agents/orchestrator.py
"""Loop observar → pensar → agir dos agentes de IA.

Cada turno roda em segundo plano: a API devolve a sessão em ``thinking`` e o
cliente acompanha ``agent_status`` relendo a sessão. O número de chamadas ao
provedor por turno é limitado por ``AGENT_MAX_TURNS``.

Em caso de falha o turno grava ``last_error`` e volta ``agent_status`` para
``idle``: a sessão continua ativa e aceita nova mensagem para tentar de novo.
"""

from typing import List, Optional

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ResourceRef, ensure_allowed, scoped_query
from smartbroker.core.config import settings
from smartbroker.core.exceptions import BadRequestError, NotFoundError
from smartbroker.models.api_common import utcnow
from smartbroker.modules.agencies.repository import AgencyRepository, get_agency_repository
from smartbroker.modules.channels.services import ChannelService, get_channel_service
from smartbroker.modules.contacts.services import ContactService, get_contact_service
from smartbroker.modules.properties.services import PropertyService, get_property_service
from smartbroker.services.llm_client import ProviderFactory, get_provider_factory
from smartbroker.services.whatsapp_service import BaseMessagingBridge, get_messaging_bridge
from smartbroker.worker.runner import BackgroundRunner, get_runner
from .models import TERMINAL_SESSION_STATUSES, AgentMessage, AgentSessionInDB, ChatMessageAPI, ExecuteGoalAPI
from .prompts import DEMO_MODE_TEMPLATE, MAX_TURNS_MESSAGE, system_prompt_for
from .repository import AgentSessionRepository, get_agent_session_repository
from .tools import ToolRegistry


class AgentOrchestrator:
    def __init__(
        self,
        session_repo: AgentSessionRepository,
        agency_repo: AgencyRepository,
        property_service: PropertyService,
        contact_service: ContactService,
        channel_service: ChannelService,
        bridge: BaseMessagingBridge,
        provider_factory: ProviderFactory,
        runner: BackgroundRunner,
        max_turns: int = settings.AGENT_MAX_TURNS,
    ):
        self.session_repo = session_repo
        self.agency_repo = agency_repo
        self.property_service = property_service
        self.contact_service = contact_service
        self.channel_service = channel_service
        self.bridge = bridge
        self.provider_factory = provider_factory
        self.runner = runner
        self.max_turns = max_turns

    def tool_registry(self, actor: Actor) -> ToolRegistry:
        return ToolRegistry(actor, self.property_service, self.contact_service, self.channel_service, self.bridge)

    async def _get(self, session_id: str | ObjectId) -> AgentSessionInDB:
        session = await self.session_repo.get_by_id(self.session_repo.parse_id(session_id))
        if session is None:
            raise NotFoundError("Agent session not found")
        return session

    def _schedule_turn(self, session: AgentSessionInDB, actor: Actor) -> None:
        self.runner.schedule(self.run_turn(session.id, actor), name=f"agent-turn:{session.id}")

    # --- API ---
    async def execute_goal(self, payload: ExecuteGoalAPI, actor: Actor) -> AgentSessionInDB:
        ensure_allowed(actor, Action.CREATE, ResourceRef(agency_id=actor.agency_id))
        if actor.agency_id is None:
            raise BadRequestError("An agency is required to run agents")

        now = utcnow()
        session = await self.session_repo.create({
            "user_id": actor.user_id,
            "agency_id": actor.agency_id,
            "agent_type": payload.agent_type,
            "title": payload.goal[:100],
            "status": "active",
            "agent_status": "thinking",
            "context": {**payload.context, "original_goal": payload.goal},
            "messages": [AgentMessage(role="user", content=payload.goal, timestamp=now).model_dump()],
            "message_count": 1,
            "last_message_at": now,
        })
        logger.bind(service="AgentOrchestrator", session_id=str(session.id)).info(
            f"Goal received (agent_type={payload.agent_type}): '{payload.goal[:80]}'"
        )
        self._schedule_turn(session, actor)
        return session

    async def chat(self, payload: ChatMessageAPI, actor: Actor) -> AgentSessionInDB:
        session = await self._get(payload.session_id)
        ensure_allowed(actor, Action.UPDATE, session.resource_ref())
        if session.status in TERMINAL_SESSION_STATUSES:
            raise BadRequestError(f"Session is {session.status} and no longer accepts messages")

        updated = await self.session_repo.append_messages(
            session.id,
            [AgentMessage(role="user", content=payload.message)],
            expected_version=session.version,
            agent_status="thinking",
            last_error=None,
        )
        self._schedule_turn(updated, actor)
        return updated

    async def find_session(self, session_id: str, actor: Actor) -> AgentSessionInDB:
        session = await self._get(session_id)
        ensure_allowed(actor, Action.READ, session.resource_ref())
        return session

    async def list_sessions(self, actor: Actor, status: Optional[str] = None) -> List[AgentSessionInDB]:
        query = scoped_query(actor, {"status": status} if status else {}, creator_field="user_id")
        return await self.session_repo.list_by(
            query, limit=settings.AGENT_SESSION_LIST_LIMIT, sort=[("created_at", -1)]
        )

    async def archive_session(self, session_id: str, actor: Actor) -> AgentSessionInDB:
        session = await self._get(session_id)
        ensure_allowed(actor, Action.UPDATE, session.resource_ref())
        if session.status == "archived":
            return session
        return await self.session_repo.set_state(session.id, expected_version=session.version, status="archived")

    # --- Turno ---
    async def _demo_mode(self, session: AgentSessionInDB) -> AgentSessionInDB:
        goal = session.context.get("original_goal") or session.title
        message = AgentMessage(role="assistant", content=DEMO_MODE_TEMPLATE.format(goal=goal))
        logger.bind(service="AgentOrchestrator", session_id=str(session.id)).warning(
            "No AI provider configured for this agency. Answering in demo mode."
        )
        return await self.session_repo.append_messages(
            session.id, [message], expected_version=session.version, agent_status="idle", status="completed"
        )

    async def run_turn(self, session_id: ObjectId, actor: Actor) -> Optional[AgentSessionInDB]:
        log = logger.bind(service="AgentOrchestrator", session_id=str(session_id))
        try:
            session = await self.session_repo.get_by_id(session_id)
            if session is None:
                log.warning("Session disappeared before the turn started.")
                return None
            if session.status in TERMINAL_SESSION_STATUSES:
                log.info(f"Session is {session.status}; turn skipped.")
                return session

            agency = await self.agency_repo.get_by_id(session.agency_id)
            provider = await self.provider_factory.for_agency(agency)
            if provider is None:
                return await self._demo_mode(session)

            tools = self.tool_registry(actor)
            schemas = tools.schemas()
            system_prompt = system_prompt_for(session.agent_type)

            for turn in range(1, self.max_turns + 1):
                log.info(f"Calling {provider.provider_name} (turn {turn}/{self.max_turns})...")
                response = await provider.complete(system_prompt, session.transcript(), schemas)

                if not response.has_tool_calls:
                    final = AgentMessage(role="assistant", content=response.text)
                    session = await self.session_repo.append_messages(
                        session.id, [final], expected_version=session.version, agent_status="idle"
                    )
                    log.success(f"Turn finished after {turn} provider call(s).")
                    return session

                session = await self.session_repo.set_state(
                    session.id, expected_version=session.version, open_only=True, agent_status="executing"
                )
                # Sequencial, na ordem devolvida pelo provedor
                for call in response.tool_calls:
                    result = await tools.execute(call.name, call.arguments)
                    entry = AgentMessage(
                        role="assistant",
                        content=f"[Ferramenta: {call.name}] {result}",
                        metadata={"tool_name": call.name, "args": call.arguments, "tool_call_id": call.id},
                    )
                    session = await self.session_repo.append_messages(
                        session.id, [entry], expected_version=session.version
                    )

            error = MAX_TURNS_MESSAGE.format(max_turns=self.max_turns)
            log.warning(error)
            return await self.session_repo.set_state(
                session.id,
                expected_version=session.version,
                open_only=True,
                agent_status="max_turns_exceeded",
                last_error=error,
            )
        except Exception as e:
            log.exception("Agent turn failed.")
            current = await self.session_repo.get_by_id(session_id)
            if current is not None and current.status in TERMINAL_SESSION_STATUSES:
                log.info(f"Session became {current.status} during the turn; result discarded.")
                return current
            return await self.session_repo.mark_failed(session_id, str(e) or e.__class__.__name__)


async def get_agent_orchestrator(
    session_repo: AgentSessionRepository = Depends(get_agent_session_repository),
    agency_repo: AgencyRepository = Depends(get_agency_repository),
    property_service: PropertyService = Depends(get_property_service),
    contact_service: ContactService = Depends(get_contact_service),
    channel_service: ChannelService = Depends(get_channel_service),
    bridge: BaseMessagingBridge = Depends(get_messaging_bridge),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    runner: BackgroundRunner = Depends(get_runner),
) -> AgentOrchestrator:
    return AgentOrchestrator(
        session_repo, agency_repo, property_service, contact_service, channel_service, bridge, provider_factory, runner
    )
