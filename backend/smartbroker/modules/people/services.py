# smartbroker/modules/people/services.py
from fastapi import Depends
from loguru import logger

from smartbroker.core import security
from smartbroker.core.authorization import Action, Actor, ResourceRef, Role, ensure_allowed
from smartbroker.core.config import settings
from smartbroker.core.exceptions import ConflictError, NotFoundError, UnauthorizedError
from .models import AuthResponse, UserAPI, UserCreateInternal, UserInDB, UserRegisterAPI
from .repository import UserRepository, get_user_repository


class AuthService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    def _auth_response(self, user: UserInDB) -> AuthResponse:
        return AuthResponse(access_token=security.create_token_for_user(user), user=UserAPI.from_db(user))

    async def register(self, payload: UserRegisterAPI) -> AuthResponse:
        email = payload.email.lower()
        log = logger.bind(service="AuthService", email=email)
        if await self.user_repo.get_by_email(email):
            log.warning("Registration rejected: email already registered.")
            raise ConflictError("Email already registered")

        bootstrap_admins = {e.lower() for e in settings.BOOTSTRAP_ADMIN_EMAILS}
        role = Role.ADMIN if email in bootstrap_admins else Role.VIEWER
        user = await self.user_repo.create(UserCreateInternal(
            email=email,
            hashed_password=security.get_password_hash(payload.password),
            name=payload.name,
            phone=payload.phone,
            role=role,
        ))
        log.success(f"User registered (ID: {user.id}, role: {user.role}).")
        return self._auth_response(user)

    async def authenticate(self, email: str, password: str) -> AuthResponse:
        email = email.lower()
        log = logger.bind(service="AuthService", email=email)
        user = await self.user_repo.get_by_email(email)
        if user is None or not security.verify_password(password, user.hashed_password):
            log.warning("Authentication failed: incorrect email or password.")
            raise UnauthorizedError("Incorrect email or password")
        if not user.is_active:
            log.warning("Authentication failed: inactive user.")
            raise UnauthorizedError("Inactive user")

        await self.user_repo.touch_last_login(user.id)
        log.success(f"Authentication successful (ID: {user.id}).")
        return self._auth_response(user)

    async def refresh(self, user: UserInDB) -> AuthResponse:
        return self._auth_response(user)


class UserService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def _get_or_404(self, user_id: str) -> UserInDB:
        user = await self.user_repo.get_by_id(self.user_repo.parse_id(user_id))
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_user(self, user_id: str, actor: Actor) -> UserInDB:
        user = await self._get_or_404(user_id)
        ensure_allowed(
            actor,
            Action.READ,
            ResourceRef(agency_id=user.agency_id, owner_id=user.id, subject_id=user.id),
            allow_self_read=True,
        )
        return user

    async def change_role(self, user_id: str, role: Role, actor: Actor) -> UserInDB:
        user = await self._get_or_404(user_id)
        ensure_allowed(actor, Action.ADMINISTER, ResourceRef(agency_id=user.agency_id))
        updated = await self.user_repo.update(user.id, {"role": role.value}, expected_version=user.version)
        logger.bind(service="UserService", user_id=str(user.id)).info(f"Role changed from {user.role} to {role.value}.")
        return updated

    async def set_active(self, user_id: str, is_active: bool, actor: Actor) -> UserInDB:
        user = await self._get_or_404(user_id)
        ensure_allowed(actor, Action.ADMINISTER, ResourceRef(agency_id=user.agency_id))
        return await self.user_repo.set_active_status(user.id, is_active, expected_version=user.version)


# Factories
async def get_auth_service(user_repo: UserRepository = Depends(get_user_repository)) -> AuthService:
    return AuthService(user_repo)


async def get_user_service(user_repo: UserRepository = Depends(get_user_repository)) -> UserService:
    return UserService(user_repo)
