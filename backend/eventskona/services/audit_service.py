import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventskona.core.rate_limit import get_client_ip
from eventskona.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Writes and queries the audit trail"""

    @staticmethod
    def request_meta(request: Optional[Request]) -> Dict[str, str]:
        if request is None:
            return {"ip_address": "unknown", "user_agent": "unknown"}
        return {
            "ip_address": get_client_ip(request),
            "user_agent": request.headers.get("user-agent", "unknown"),
        }

    @staticmethod
    def record(
        db: Session,
        action: str,
        *,
        request: Optional[Request] = None,
        user_id: Optional[int] = None,
        admin_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Persist an audit entry.

        Audit failures must not break the action being audited, so database
        errors are logged and rolled back instead of propagating.
        """
        entry = AuditLog(
            admin_id=admin_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            created_at=datetime.now(timezone.utc),
            **AuditService.request_meta(request),
        )
        try:
            db.add(entry)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create audit log '{action}': {str(e)}")
            return None
        return entry

    @staticmethod
    def list_logs(
        db: Session,
        *,
        admin_id: Optional[str] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = db.query(AuditLog)
        if admin_id:
            query = query.filter(AuditLog.admin_id == admin_id)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.created_at <= end_date)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()


audit_service = AuditService()
