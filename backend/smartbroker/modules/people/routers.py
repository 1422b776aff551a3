# smartbroker/modules/people/routers.py
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from smartbroker.core.config import settings
from smartbroker.core.rate_limit import limiter
from smartbroker.core.security import CurrentActor, CurrentUser
from .models import AuthResponse, UserAPI, UserActiveUpdateAPI, UserRegisterAPI, UserRoleUpdateAPI
from .services import AuthService, UserService, get_auth_service, get_user_service

auth_router = APIRouter()
users_router = APIRouter()


@auth_router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user (role viewer)",
    tags=["Authentication"],
)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(
    request: Request,
    payload: UserRegisterAPI = Body(...),
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.register(payload)


@auth_router.post("/login", response_model=AuthResponse, tags=["Authentication"])
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login_for_access_token(
    request: Request,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    auth_service: AuthService = Depends(get_auth_service),
):
    """Authenticates using username (email) & password form data."""
    return await auth_service.authenticate(form_data.username, form_data.password)


@auth_router.post("/refresh", response_model=AuthResponse, tags=["Authentication"])
async def refresh_token(
    current_user: CurrentUser,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.refresh(current_user)


@users_router.get("/me", response_model=UserAPI, tags=["Users"])
async def read_users_me(current_user: CurrentUser):
    return UserAPI.from_db(current_user)


@users_router.get("/{user_id}", response_model=UserAPI, tags=["Users"])
async def read_user(
    actor: CurrentActor,
    user_id: str = Path(...),
    user_service: UserService = Depends(get_user_service),
):
    return UserAPI.from_db(await user_service.get_user(user_id, actor))


@users_router.patch("/{user_id}/role", response_model=UserAPI, tags=["Users - Admin"])
async def change_user_role(
    actor: CurrentActor,
    user_id: str = Path(...),
    payload: UserRoleUpdateAPI = Body(...),
    user_service: UserService = Depends(get_user_service),
):
    return UserAPI.from_db(await user_service.change_role(user_id, payload.role, actor))


@users_router.patch("/{user_id}/active", response_model=UserAPI, tags=["Users - Admin"])
async def set_user_active(
    actor: CurrentActor,
    user_id: str = Path(...),
    payload: UserActiveUpdateAPI = Body(...),
    user_service: UserService = Depends(get_user_service),
):
    return UserAPI.from_db(await user_service.set_active(user_id, payload.is_active, actor))
