# smartbroker/modules/contacts/routers.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from smartbroker.core.security import CurrentActor
from smartbroker.models.api_common import PaginatedResponse
from .models import (
    ContactCreateAPI,
    ContactFilters,
    ContactInDB,
    ContactUpdateAPI,
    InteractionCreateAPI,
    WhatsappMessageAPI,
    WhatsappSendResponse,
)
from .services import ContactService, get_contact_service

contacts_router = APIRouter()


@contacts_router.post(
    "",
    response_model=ContactInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Create a contact (lead)",
    tags=["Contacts"],
)
async def create_contact(
    actor: CurrentActor,
    payload: ContactCreateAPI = Body(...),
    service: ContactService = Depends(get_contact_service),
):
    return await service.create(payload, actor)


@contacts_router.get("", response_model=PaginatedResponse[ContactInDB], tags=["Contacts"])
async def list_contacts(
    actor: CurrentActor,
    filters: ContactFilters = Depends(),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: ContactService = Depends(get_contact_service),
):
    """Agents only see contacts assigned to them (or created by them when unassigned)."""
    total, items = await service.list(actor, filters, skip=skip, limit=limit)
    return PaginatedResponse[ContactInDB](total_items=total, items=items, limit=limit, skip=skip)


@contacts_router.get("/by-phone/{phone}", response_model=ContactInDB, tags=["Contacts"])
async def get_contact_by_phone(
    actor: CurrentActor,
    phone: str = Path(...),
    agency_id: Optional[str] = Query(None),
    service: ContactService = Depends(get_contact_service),
):
    target = service.contact_repo.parse_id(agency_id) if agency_id else None
    return await service.find_by_phone(phone, actor, agency_id=target)


@contacts_router.get("/{contact_id}", response_model=ContactInDB, tags=["Contacts"])
async def get_contact(
    actor: CurrentActor,
    contact_id: str = Path(...),
    service: ContactService = Depends(get_contact_service),
):
    return await service.get(contact_id, actor)


@contacts_router.patch("/{contact_id}", response_model=ContactInDB, tags=["Contacts"])
async def update_contact(
    actor: CurrentActor,
    contact_id: str = Path(...),
    payload: ContactUpdateAPI = Body(...),
    service: ContactService = Depends(get_contact_service),
):
    return await service.update(contact_id, payload, actor)


@contacts_router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Contacts"])
async def delete_contact(
    actor: CurrentActor,
    contact_id: str = Path(...),
    service: ContactService = Depends(get_contact_service),
):
    await service.remove(contact_id, actor)


@contacts_router.post(
    "/{contact_id}/interactions",
    response_model=ContactInDB,
    status_code=status.HTTP_201_CREATED,
    tags=["Contacts"],
)
async def add_contact_interaction(
    actor: CurrentActor,
    contact_id: str = Path(...),
    payload: InteractionCreateAPI = Body(...),
    service: ContactService = Depends(get_contact_service),
):
    return await service.add_interaction(contact_id, payload, actor)


@contacts_router.post("/{contact_id}/whatsapp", response_model=WhatsappSendResponse, tags=["Contacts"])
async def send_whatsapp_to_contact(
    actor: CurrentActor,
    contact_id: str = Path(...),
    payload: WhatsappMessageAPI = Body(...),
    service: ContactService = Depends(get_contact_service),
):
    """Sends a WhatsApp text through the gateway and logs it in the contact history."""
    contact, ack = await service.send_whatsapp(contact_id, payload.message, actor, channel=payload.channel)
    return WhatsappSendResponse(contact=contact, delivery=ack)
