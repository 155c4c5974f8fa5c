"""
Admin dashboard accounts.

Dashboard admins are not platform users: they live in an in-memory
credential table, seeded at startup, and authenticate with their own token
secret. Nothing here is persisted; a restart forgets everything except what
the bootstrap settings recreate.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from eventskona.core.config import settings
from eventskona.core.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("super_admin", "admin", "moderator", "support")

CRUD = ["create", "read", "update", "delete"]

ROLE_PERMISSIONS: Dict[str, Dict[str, List[str]]] = {
    "super_admin": {
        "users": CRUD,
        "events": CRUD,
        "admins": CRUD,
        "settings": CRUD,
        "analytics": ["read"],
        "audit_logs": ["read"],
    },
    "admin": {
        "users": ["read", "update"],
        "events": ["read", "update", "delete"],
        "analytics": ["read"],
        "audit_logs": ["read"],
    },
    "moderator": {
        "users": ["read", "update"],
        "events": ["read", "update"],
    },
    "support": {
        "users": ["read"],
        "events": ["read"],
    },
}


def has_permission(role: Optional[str], resource: str, action: str) -> bool:
    if not role:
        return False
    return action in ROLE_PERMISSIONS.get(role, {}).get(resource, [])


def permissions_for(role: str) -> List[Dict[str, object]]:
    return [
        {"resource": resource, "actions": list(actions)}
        for resource, actions in ROLE_PERMISSIONS.get(role, {}).items()
    ]


@dataclass
class AdminAccount:
    id: str
    email: str
    name: str
    role: str
    password_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_login: Optional[datetime] = None

    @property
    def permissions(self) -> List[Dict[str, object]]:
        return permissions_for(self.role)


class AdminCredentialStore:
    def __init__(self) -> None:
        self._accounts: Dict[str, AdminAccount] = {}
        self._lock = threading.Lock()

    def add(self, email: str, password: str, name: str, role: str = "super_admin") -> AdminAccount:
        if role not in ADMIN_ROLES:
            raise ValueError(f"Unknown admin role: {role}")
        key = email.strip().lower()
        account = AdminAccount(
            id=uuid.uuid4().hex,
            email=key,
            name=name,
            role=role,
            password_hash=get_password_hash(password),
        )
        with self._lock:
            self._accounts[key] = account
        return account

    def get(self, email: str) -> Optional[AdminAccount]:
        return self._accounts.get(email.strip().lower())

    def get_by_id(self, admin_id: str) -> Optional[AdminAccount]:
        for account in self._accounts.values():
            if account.id == admin_id:
                return account
        return None

    def authenticate(self, email: str, password: str) -> Optional[AdminAccount]:
        account = self.get(email)
        if account is None or not verify_password(password, account.password_hash):
            return None
        account.last_login = datetime.now(timezone.utc)
        return account

    def clear(self) -> None:
        with self._lock:
            self._accounts.clear()

    def __len__(self) -> int:
        return len(self._accounts)


admin_store = AdminCredentialStore()


def bootstrap_admin_if_configured(store: AdminCredentialStore = admin_store) -> Optional[AdminAccount]:
    """Create the super admin from ADMIN_EMAIL / ADMIN_PASSWORD when both are set"""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.info("No admin bootstrap credentials configured; admin dashboard login disabled")
        return None
    if store.get(settings.ADMIN_EMAIL):
        return None
    account = store.add(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD, settings.ADMIN_NAME, "super_admin")
    logger.info(f"Bootstrapped admin account {account.email}")
    return account
