# smartbroker/modules/people/models.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from smartbroker.core.authorization import Role
from smartbroker.models.api_common import DocumentModel, MongoModel, PyObjectId


# --- Internal/DB Models ---
class UserInDB(DocumentModel):
    email: EmailStr
    hashed_password: str
    name: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: Role = Role.VIEWER
    agency_id: Optional[PyObjectId] = None
    is_active: bool = True
    last_login: Optional[datetime] = None


class UserCreateInternal(MongoModel):
    email: EmailStr
    hashed_password: str
    name: str
    phone: Optional[str] = None
    role: Role = Role.VIEWER
    agency_id: Optional[PyObjectId] = None
    is_active: bool = True


# --- API Models ---
class UserAPI(MongoModel):
    id: PyObjectId
    email: EmailStr
    name: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: Role
    agency_id: Optional[PyObjectId] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, user: UserInDB) -> "UserAPI":
        return cls.model_validate(user.model_dump(exclude={"hashed_password"}))


class UserRegisterAPI(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class AuthResponse(Token):
    user: UserAPI


class UserRoleUpdateAPI(BaseModel):
    role: Role


class UserActiveUpdateAPI(BaseModel):
    is_active: bool
