import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON
from sqlalchemy.sql import func
from eventskona.core.database import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ORGANIZER = "ORGANIZER"
    ADMIN = "ADMIN"


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


class User(Base):
    """
    A platform account: attendee, organizer or site admin.

    A usable login path needs a password hash, a linked OAuth provider, or
    both once accounts are linked. Accounts are never deleted; deletion
    anonymises the row and sets status=DELETED.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Stored lowercased; indexed for login lookups
    email = Column(String, unique=True, index=True, nullable=False)
    # Null for accounts created through Google sign-in
    password_hash = Column(String, nullable=True)
    auth_provider = Column(String, nullable=True)
    auth_provider_id = Column(String, nullable=True)

    role = Column(String, nullable=False, default=UserRole.USER.value)
    status = Column(String, nullable=False, default=UserStatus.ACTIVE.value)

    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)

    # The one refresh token currently honoured; overwritten on every rotation
    refresh_token = Column(Text, nullable=True)
    reset_token = Column(String, nullable=True, index=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    verification_token = Column(String, nullable=True, index=True)
    verification_expiry = Column(DateTime(timezone=True), nullable=True)

    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String, nullable=True)
    preferences = Column(JSON, nullable=True)
    notification_settings = Column(JSON, nullable=True)

    organizer_name = Column(String, nullable=True)
    organizer_slug = Column(String, unique=True, index=True, nullable=True)
    organizer_bio = Column(Text, nullable=True)
    organizer_website = Column(String, nullable=True)
    organizer_logo = Column(String, nullable=True)
    organizer_socials = Column(JSON, nullable=True)
    organizer_since = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value
