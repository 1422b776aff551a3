# smartbroker/modules/campaigns/executor.py
"""Disparo de campanhas pelo WhatsApp.

A entrega é sequencial e best-effort (no máximo uma tentativa por contato):
falhas individuais viram ``statistics.failed`` e não interrompem o lote.
"""

import asyncio
from typing import List, Optional

from bson import ObjectId
from fastapi import Depends
from loguru import logger

from smartbroker.core.authorization import Action, Actor, ensure_allowed
from smartbroker.core.exceptions import BadRequestError, NotFoundError
from smartbroker.models.api_common import utcnow
from smartbroker.modules.contacts.models import ContactInDB
from smartbroker.modules.contacts.repository import ContactRepository, get_contact_repository
from smartbroker.services.whatsapp_service import BaseMessagingBridge, get_messaging_bridge
from smartbroker.worker.runner import BackgroundRunner, get_runner
from .models import CampaignInDB, CampaignStatistics
from .repository import CampaignRepository, get_campaign_repository
from .templates import render_template

NON_EXECUTABLE_STATUSES = {
    "running": "Campaign is already running",
    "completed": "Campaign has already been completed",
    "cancelled": "Campaign was cancelled",
}


class CampaignExecutor:
    def __init__(
        self,
        campaign_repo: CampaignRepository,
        contact_repo: ContactRepository,
        bridge: BaseMessagingBridge,
        runner: BackgroundRunner,
    ):
        self.campaign_repo = campaign_repo
        self.contact_repo = contact_repo
        self.bridge = bridge
        self.runner = runner

    async def resolve_audience(self, campaign: CampaignInDB) -> List[ContactInDB]:
        audience = campaign.audience
        return await self.contact_repo.list_audience(
            campaign.agency_id,
            contact_ids=audience.specific_contact_ids,
            statuses=audience.target_status,
            tags=audience.target_tags,
        )

    async def execute(self, campaign_id: str | ObjectId, actor: Actor) -> CampaignInDB:
        campaign = await self.campaign_repo.get_by_id(self.campaign_repo.parse_id(campaign_id))
        if campaign is None or not campaign.is_active:
            raise NotFoundError("Campaign not found")
        ensure_allowed(actor, Action.EXECUTE, campaign.resource_ref())
        return await self.start(campaign)

    async def start(self, campaign: CampaignInDB) -> CampaignInDB:
        """Valida, resolve a audiência e agenda a entrega. Retorna a campanha já em ``running``."""
        log = logger.bind(service="CampaignExecutor", campaign_id=str(campaign.id))
        reason = NON_EXECUTABLE_STATUSES.get(campaign.status)
        if reason:
            raise BadRequestError(reason)

        contacts = await self.resolve_audience(campaign)
        if not contacts:
            await self.campaign_repo.set_status(
                campaign.id,
                "completed",
                expected_version=campaign.version,
                statistics=CampaignStatistics().model_dump(),
                last_execution_date=utcnow(),
            )
            log.warning("Campaign audience is empty; marked as completed.")
            raise BadRequestError("Campaign audience is empty")

        running = await self.campaign_repo.set_status(
            campaign.id,
            "running",
            expected_version=campaign.version,
            statistics=CampaignStatistics(total_contacts=len(contacts)).model_dump(),
            last_execution_date=utcnow(),
            next_execution_date=None,
            last_error=None,
        )
        log.info(f"Campaign started for {len(contacts)} contact(s) on channel '{campaign.channel}'.")
        self.runner.schedule(self.deliver(running, contacts), name=f"campaign:{campaign.id}")
        return running

    async def _send(self, campaign: CampaignInDB, contact: ContactInDB) -> None:
        message = campaign.message
        text = render_template(message.template, message.variables, contact)
        if message.media_url:
            await self.bridge.send_media(
                campaign.channel, contact.phone, message.media_type or "image", message.media_url, caption=text
            )
        else:
            await self.bridge.send_text(campaign.channel, contact.phone, text)

    async def deliver(self, campaign: CampaignInDB, contacts: List[ContactInDB]) -> Optional[CampaignInDB]:
        log = logger.bind(service="CampaignExecutor", campaign_id=str(campaign.id))
        stats = CampaignStatistics(total_contacts=len(contacts))
        delay = campaign.rate_limit_ms / 1000
        try:
            for index, contact in enumerate(contacts):
                if index > 0 and delay > 0:
                    await asyncio.sleep(delay)
                try:
                    await self._send(campaign, contact)
                    stats.sent += 1
                except Exception as e:
                    stats.failed += 1
                    log.warning(f"Delivery to contact {contact.id} failed: {e}")

            done = await self.campaign_repo.save_statistics(
                campaign.id, stats, status="completed", last_execution_date=utcnow()
            )
            log.success(f"Campaign completed: {stats.sent} sent, {stats.failed} failed.")
            return done
        except Exception as e:
            log.exception("Campaign delivery loop aborted.")
            # Pausada, pode ser executada novamente
            return await self.campaign_repo.save_statistics(
                campaign.id, stats, status="paused", last_error=str(e) or e.__class__.__name__
            )


async def get_campaign_executor(
    campaign_repo: CampaignRepository = Depends(get_campaign_repository),
    contact_repo: ContactRepository = Depends(get_contact_repository),
    bridge: BaseMessagingBridge = Depends(get_messaging_bridge),
    runner: BackgroundRunner = Depends(get_runner),
) -> CampaignExecutor:
    return CampaignExecutor(campaign_repo, contact_repo, bridge, runner)
