# smartbroker/api/v1.py
from fastapi import APIRouter

from smartbroker.api.endpoints import status
from smartbroker.modules.agencies.routers import agencies_router
from smartbroker.modules.agents.routers import agents_router
from smartbroker.modules.campaigns.routers import campaigns_router
from smartbroker.modules.channels.routers import channels_router
from smartbroker.modules.contacts.routers import contacts_router
from smartbroker.modules.people.routers import auth_router, users_router
from smartbroker.modules.properties.routers import properties_router

api_v1_router = APIRouter()

api_v1_router.include_router(status.router)
api_v1_router.include_router(auth_router, prefix="/auth")
api_v1_router.include_router(users_router, prefix="/users")
api_v1_router.include_router(agencies_router, prefix="/agencies")
api_v1_router.include_router(properties_router, prefix="/properties")
api_v1_router.include_router(contacts_router, prefix="/contacts")
api_v1_router.include_router(campaigns_router, prefix="/campaigns")
api_v1_router.include_router(channels_router, prefix="/channels")
api_v1_router.include_router(agents_router, prefix="/agents")
