# smartbroker/core/security.py

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from loguru import logger
from passlib.context import CryptContext

from smartbroker.core.authorization import Actor, Role
from smartbroker.core.config import settings
from smartbroker.core.exceptions import UnauthorizedError
from smartbroker.modules.people.models import UserInDB
from smartbroker.modules.people.repository import UserRepository, get_user_repository

# Contexto para Hashing de Senhas (Bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

InactiveUserException = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Inactive user",
)


# --- Funções de Utilidade de Senha ---

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verifica se a senha plana corresponde ao hash armazenado."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Error verifying password (hash might be invalid): {e}")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# --- Funções de Utilidade JWT ---

def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Cria um novo token de acesso JWT (claims exp, iat, nbf)."""
    to_encode = data.copy()
    subject = to_encode.get("sub")
    if not subject:
        raise ValueError("Missing 'sub' claim in token data for JWT creation")

    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now, "nbf": now})

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    logger.debug(f"Access token created for subject {subject}, expires at {expire.isoformat()}")
    return encoded_jwt


def create_token_for_user(user: UserInDB) -> str:
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role},
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    log = logger.bind(service="AuthTokenValidation")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        log.warning("Token validation failed: signature has expired.")
        raise UnauthorizedError("Token has expired")
    except JWTError as e:
        log.warning(f"Invalid JWT token: {e}")
        raise UnauthorizedError() from e
    if not payload.get("sub"):
        log.warning("Token validation failed: 'sub' claim missing.")
        raise UnauthorizedError()
    return payload


async def get_current_active_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    user_repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> UserInDB:
    """
    Dependência FastAPI: valida o token e busca o usuário no DB a cada
    requisição (mudanças de papel/agência valem imediatamente).
    """
    payload = decode_access_token(token)
    user_id = payload["sub"]
    log = logger.bind(service="AuthUserCheck", user_id=user_id)

    user = await user_repo.get_by_id(user_id)
    if user is None:
        log.error("User from valid token NOT FOUND in database.")
        raise UnauthorizedError()
    if not user.is_active:
        log.warning("Token is valid but user is INACTIVE.")
        raise InactiveUserException
    return user


def actor_from_user(user: UserInDB) -> Actor:
    return Actor(user_id=user.id, role=Role(user.role), agency_id=user.agency_id, email=user.email)


async def get_current_actor(user: Annotated[UserInDB, Depends(get_current_active_user)]) -> Actor:
    return actor_from_user(user)


CurrentUser = Annotated[UserInDB, Depends(get_current_active_user)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
