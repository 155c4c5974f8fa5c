"""
Google sign-in bridge.

The client finishes Google's OAuth flow itself and hands us the Google access
token. We exchange it once for the user's verified identity via the userinfo
endpoint; the Google token is never stored.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from eventskona.core.config import settings

logger = logging.getLogger(__name__)


class GoogleAuthError(Exception):
    """Google rejected the token, was unreachable, or returned no email"""


@dataclass(frozen=True)
class GoogleUserInfo:
    sub: str
    email: str
    email_verified: bool = False
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None


class GoogleOAuthService:
    @staticmethod
    async def fetch_userinfo(google_access_token: str) -> GoogleUserInfo:
        headers = {"Authorization": f"Bearer {google_access_token}"}
        try:
            async with httpx.AsyncClient(timeout=settings.GOOGLE_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(settings.GOOGLE_USERINFO_URL, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Google userinfo request failed: {str(e)}")
            raise GoogleAuthError("Failed to verify Google token") from e

        if response.status_code != 200:
            logger.info(f"Google userinfo rejected token with status {response.status_code}")
            raise GoogleAuthError("Invalid Google token")

        try:
            data = response.json()
        except ValueError as e:
            raise GoogleAuthError("Failed to verify Google token") from e

        email = (data.get("email") or "").strip().lower()
        if not email:
            raise GoogleAuthError("Could not retrieve email from Google")

        return GoogleUserInfo(
            sub=str(data.get("sub") or ""),
            email=email,
            email_verified=bool(data.get("email_verified")),
            given_name=data.get("given_name"),
            family_name=data.get("family_name"),
            picture=data.get("picture"),
        )


google_oauth_service = GoogleOAuthService()
