from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy.orm import Session

from eventskona.core.security import (
    generate_access_token,
    generate_refresh_token,
    token_payload,
)
from eventskona.models.user import User


class SessionService:
    """Issues token pairs and keeps the stored refresh token in step"""

    @staticmethod
    def issue_token_pair(db: Session, user: User, touch_login: bool = False) -> Tuple[str, str]:
        """
        Mint a new access/refresh pair and persist the refresh token.

        Storing the new value is what retires the previous refresh token:
        the refresh endpoint only honours an exact match.
        """
        payload = token_payload(user)
        access_token = generate_access_token(payload)
        refresh_token = generate_refresh_token(payload)

        user.refresh_token = refresh_token
        if touch_login:
            user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(user)
        return access_token, refresh_token

    @staticmethod
    def revoke(db: Session, user: User) -> None:
        """Forget the stored refresh token so no refresh can succeed"""
        user.refresh_token = None
        db.commit()


session_service = SessionService()
