from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; accepts either on input"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    message: str = "Success"
    data: Optional[DataT] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class AuthUser(CamelModel):
    """User fields returned alongside freshly issued tokens"""
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    avatar_url: Optional[str] = None
    email_verified: bool
    organizer_name: Optional[str] = None
    organizer_slug: Optional[str] = None


class UserProfile(AuthUser):
    phone: Optional[str] = None
    bio: Optional[str] = None
    status: str
    preferences: Optional[Dict[str, Any]] = None
    notification_settings: Optional[Dict[str, Any]] = None
    organizer_bio: Optional[str] = None
    organizer_website: Optional[str] = None
    organizer_logo: Optional[str] = None
    organizer_socials: Optional[Dict[str, Any]] = None
    organizer_since: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @field_serializer("organizer_since", "created_at", "last_login_at")
    def serialize_datetime(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class AuthData(TokenPair):
    user: AuthUser


class ProfileWithTokens(CamelModel):
    """Onboarding result; tokens are present only when the role changed"""
    user: UserProfile
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class AdminPermissionOut(CamelModel):
    resource: str
    actions: List[str]


class AdminOut(CamelModel):
    id: str
    email: str
    name: str
    role: str
    created_at: datetime
    last_login: Optional[datetime] = None
    permissions: List[AdminPermissionOut]

    @field_serializer("created_at", "last_login")
    def serialize_datetime(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class AdminAuthData(CamelModel):
    admin: AdminOut
    access_token: str


class AuditLogOut(CamelModel):
    id: int
    admin_id: Optional[str] = None
    user_id: Optional[int] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_serializer("created_at")
    def serialize_created_at(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None
