import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import EmailStr, Field
from sqlalchemy.orm import Session

from eventskona.api.dependencies import get_current_admin, rate_limit, require_admin_permission
from eventskona.core.database import get_db
from eventskona.core.errors import not_found, unauthorized
from eventskona.core.rate_limit import RATE_LIMITS
from eventskona.core.security import generate_admin_access_token
from eventskona.schemas import (
    AdminAuthData,
    AdminOut,
    AuditLogOut,
    CamelModel,
    Envelope,
    MessageResponse,
)
from eventskona.services.admin_auth import AdminAccount, admin_store
from eventskona.services.audit_service import audit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


def _admin_out(account: AdminAccount) -> AdminOut:
    return AdminOut(
        id=account.id,
        email=account.email,
        name=account.name,
        role=account.role,
        created_at=account.created_at,
        last_login=account.last_login,
        permissions=account.permissions,
    )


@router.post(
    "/auth/login",
    response_model=Envelope[AdminAuthData],
    dependencies=[Depends(rate_limit(RATE_LIMITS["auth"]))],
)
async def admin_login(body: AdminLoginRequest, request: Request, db: Session = Depends(get_db)):
    """Dashboard sign-in against the in-memory admin table"""
    account = admin_store.authenticate(body.email, body.password)
    if account is None:
        raise unauthorized("Invalid email or password", "INVALID_CREDENTIALS")

    access_token = generate_admin_access_token({
        "sub": account.id,
        "email": account.email,
        "role": account.role,
        "name": account.name,
    })
    audit_service.record(db, "admin_login", request=request, admin_id=account.id,
                         entity_type="authentication", details={"email": account.email})

    return {
        "success": True,
        "message": "Login successful",
        "data": AdminAuthData(admin=_admin_out(account), access_token=access_token),
    }


@router.post("/auth/logout", response_model=MessageResponse)
async def admin_logout(
    request: Request,
    admin: Dict[str, Any] = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Admin tokens are stateless; logout is recorded for the audit trail"""
    audit_service.record(db, "admin_logout", request=request, admin_id=admin["sub"],
                         entity_type="authentication")
    return {"success": True, "message": "Logged out successfully"}


@router.get("/auth/me", response_model=Envelope[AdminOut])
async def admin_me(admin: Dict[str, Any] = Depends(get_current_admin)):
    account = admin_store.get_by_id(admin["sub"])
    if account is None:
        raise not_found("Admin not found")
    return {"success": True, "message": "Success", "data": _admin_out(account)}


@router.get("/audit-logs", response_model=Envelope[List[AuditLogOut]])
async def list_audit_logs(
    admin_id: Optional[str] = Query(default=None, alias="adminId"),
    user_id: Optional[int] = Query(default=None, alias="userId"),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    limit: int = Query(default=100, ge=1, le=1000),
    _admin: Dict[str, Any] = Depends(require_admin_permission("audit_logs", "read")),
    db: Session = Depends(get_db)
):
    logs = audit_service.list_logs(
        db,
        admin_id=admin_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return {
        "success": True,
        "message": "Success",
        "data": [AuditLogOut.model_validate(log) for log in logs],
    }
