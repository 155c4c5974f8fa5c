import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Literal, Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import AfterValidator, BeforeValidator, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventskona.api.dependencies import get_current_user, rate_limit, require_token_secrets
from eventskona.core.config import settings
from eventskona.core.database import get_db
from eventskona.core.errors import bad_request, conflict, forbidden, unauthorized
from eventskona.core.rate_limit import RATE_LIMITS
from eventskona.core.security import (
    generate_random_token,
    get_password_hash,
    validate_password_strength,
    verify_password,
    verify_refresh_token,
)
from eventskona.models.user import User, UserRole, UserStatus
from eventskona.schemas import (
    AuthData,
    AuthUser,
    CamelModel,
    Envelope,
    MessageResponse,
    ProfileWithTokens,
    TokenPair,
    UserProfile,
)
from eventskona.services.audit_service import audit_service
from eventskona.services.google_oauth import GoogleAuthError, google_oauth_service
from eventskona.services.session_service import session_service
from eventskona.utils.slug import slugify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

auth_rate_limit = Depends(rate_limit(RATE_LIMITS["auth"]))

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
SUSPENDED_MESSAGE = "Your account has been suspended. Please contact support."
FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset link has been sent."
RESEND_VERIFICATION_MESSAGE = "If an account exists with this email, a verification link has been sent."


# =====================
# Request bodies
# =====================

def _normalize_email(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _url_or_blank(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return value
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return value


NormalizedEmail = Annotated[EmailStr, BeforeValidator(_normalize_email)]
StrippedStr = Annotated[str, BeforeValidator(_strip)]
OptionalUrl = Annotated[Optional[str], AfterValidator(_url_or_blank)]


class EmailBody(CamelModel):
    email: NormalizedEmail


class RegisterRequest(EmailBody):
    password: str = Field(min_length=8)
    first_name: StrippedStr = Field(min_length=1)
    last_name: StrippedStr = Field(min_length=1)


class LoginRequest(EmailBody):
    password: str = Field(min_length=1)


class GoogleLoginRequest(CamelModel):
    access_token: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8)


class OrganizerSocials(CamelModel):
    twitter: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None


class OnboardingRequest(CamelModel):
    first_name: Optional[StrippedStr] = Field(default=None, min_length=1)
    last_name: Optional[StrippedStr] = Field(default=None, min_length=1)
    phone: Optional[StrippedStr] = None
    bio: Optional[StrippedStr] = None
    avatar_url: OptionalUrl = None
    preferences: Optional[Dict[str, Any]] = None
    notification_settings: Optional[Dict[str, Any]] = None
    payout_account: Optional[Dict[str, Any]] = None
    # Organizer fields, used when becoming or already being an organizer
    become_organizer: Optional[bool] = None
    organizer_name: Optional[StrippedStr] = Field(default=None, min_length=2)
    organizer_bio: Optional[StrippedStr] = None
    organizer_website: OptionalUrl = None
    organizer_logo: OptionalUrl = None
    organizer_socials: Optional[OrganizerSocials] = None


class DeleteAccountRequest(CamelModel):
    # Required only for accounts that have a password
    password: Optional[str] = None
    confirmation: Literal["DELETE MY ACCOUNT"]


# =====================
# Helpers
# =====================

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _auth_data(user: User, access_token: str, refresh_token: str) -> AuthData:
    return AuthData(
        user=AuthUser.model_validate(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


def _ensure_strong(password: str) -> None:
    check = validate_password_strength(password)
    if not check.valid:
        raise bad_request(check.message, "WEAK_PASSWORD")


# =====================
# Registration & login
# =====================

@router.post(
    "/register",
    response_model=Envelope[AuthData],
    status_code=status.HTTP_201_CREATED,
    dependencies=[auth_rate_limit, Depends(require_token_secrets)],
)
async def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Create a password account and sign it in"""
    _ensure_strong(body.password)

    if db.query(User).filter(User.email == body.email).first():
        raise conflict("An account with this email already exists", "EMAIL_EXISTS")

    # Email is marked verified at signup until outbound mail is wired up
    user = User(
        email=body.email,
        password_hash=get_password_hash(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role=UserRole.USER.value,
        status=UserStatus.ACTIVE.value,
        email_verified=True,
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        db.rollback()
        raise conflict("An account with this email already exists", "EMAIL_EXISTS")

    access_token, refresh_token = session_service.issue_token_pair(db, user)
    logger.info(f"Registered user {user.id}")
    audit_service.record(db, "user_registered", request=request, user_id=user.id,
                         entity_type="user", entity_id=str(user.id))

    return {
        "success": True,
        "message": "Account created successfully",
        "data": _auth_data(user, access_token, refresh_token),
    }


@router.post(
    "/login",
    response_model=Envelope[AuthData],
    dependencies=[auth_rate_limit, Depends(require_token_secrets)],
)
async def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Exchange email and password for a token pair.

    Unknown emails, deleted accounts and wrong passwords share one 401 so
    the response never reveals whether an email is registered. Suspension is
    reported distinctly, but only once the password has been proven.
    """
    user = db.query(User).filter(User.email == body.email).first()
    if user is None or user.status == UserStatus.DELETED:
        raise unauthorized(INVALID_CREDENTIALS_MESSAGE, "INVALID_CREDENTIALS")

    if not user.password_hash:
        raise unauthorized("This account uses Google sign-in. Please sign in with Google.", "OAUTH_ACCOUNT")

    if not verify_password(body.password, user.password_hash):
        logger.info(f"Failed login for user {user.id}")
        raise unauthorized(INVALID_CREDENTIALS_MESSAGE, "INVALID_CREDENTIALS")

    if user.status == UserStatus.SUSPENDED:
        raise forbidden(SUSPENDED_MESSAGE, "ACCOUNT_SUSPENDED")

    access_token, refresh_token = session_service.issue_token_pair(db, user, touch_login=True)
    audit_service.record(db, "user_login", request=request, user_id=user.id,
                         entity_type="user", entity_id=str(user.id), details={"method": "password"})

    return {
        "success": True,
        "message": "Login successful",
        "data": _auth_data(user, access_token, refresh_token),
    }


@router.post(
    "/google",
    response_model=Envelope[AuthData],
    dependencies=[auth_rate_limit, Depends(require_token_secrets)],
)
async def google_login(body: GoogleLoginRequest, request: Request, db: Session = Depends(get_db)):
    """Sign in with a Google access token obtained by the client"""
    try:
        google_user = await google_oauth_service.fetch_userinfo(body.access_token)
    except GoogleAuthError as e:
        raise unauthorized(str(e), "INVALID_GOOGLE_TOKEN")

    user = db.query(User).filter(User.email == google_user.email).first()

    if user is not None:
        if user.status == UserStatus.SUSPENDED:
            raise forbidden(SUSPENDED_MESSAGE, "ACCOUNT_SUSPENDED")
        if user.status == UserStatus.DELETED:
            raise unauthorized("This account is no longer available.", "ACCOUNT_UNAVAILABLE")

        # Attach Google to an existing password account on first Google sign-in
        if not user.auth_provider:
            user.auth_provider = "google"
            user.auth_provider_id = google_user.sub
            user.avatar_url = user.avatar_url or google_user.picture
            user.email_verified = True
            logger.info(f"Linked Google identity to user {user.id}")
    else:
        user = User(
            email=google_user.email,
            first_name=google_user.given_name,
            last_name=google_user.family_name,
            avatar_url=google_user.picture,
            auth_provider="google",
            auth_provider_id=google_user.sub,
            role=UserRole.USER.value,
            status=UserStatus.ACTIVE.value,
            email_verified=True,
        )
        db.add(user)
        db.flush()
        logger.info(f"Created user {user.id} from Google sign-in")

    access_token, refresh_token = session_service.issue_token_pair(db, user, touch_login=True)
    audit_service.record(db, "user_login", request=request, user_id=user.id,
                         entity_type="user", entity_id=str(user.id), details={"method": "google"})

    return {
        "success": True,
        "message": "Login successful",
        "data": _auth_data(user, access_token, refresh_token),
    }


# =====================
# Session lifecycle
# =====================

@router.post(
    "/refresh",
    response_model=Envelope[TokenPair],
    dependencies=[auth_rate_limit, Depends(require_token_secrets)],
)
async def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Rotate: trade the current refresh token for a new pair"""
    payload = verify_refresh_token(body.refresh_token)
    if payload is None:
        raise unauthorized("Invalid or expired refresh token", "INVALID_REFRESH_TOKEN")

    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError, TypeError):
        raise unauthorized("Invalid refresh token", "INVALID_REFRESH_TOKEN")

    user = db.query(User).filter(User.id == user_id).first()
    # Only the most recently issued token is honoured; older ones were rotated out
    if (
        user is None
        or not user.refresh_token
        or not hmac.compare_digest(user.refresh_token, body.refresh_token)
    ):
        logger.warning(f"Rejected stale or unknown refresh token for subject {user_id}")
        raise unauthorized("Invalid refresh token", "INVALID_REFRESH_TOKEN")

    if not user.is_active:
        raise forbidden("Account is not active", "ACCOUNT_INACTIVE")

    access_token, refresh_token = session_service.issue_token_pair(db, user)
    return {
        "success": True,
        "message": "Tokens refreshed",
        "data": TokenPair(access_token=access_token, refresh_token=refresh_token),
    }


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Clear the stored refresh token.

    Access tokens already issued stay valid until they expire.
    """
    session_service.revoke(db, current_user)
    audit_service.record(db, "user_logout", request=request, user_id=current_user.id,
                         entity_type="user", entity_id=str(current_user.id))
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=Envelope[UserProfile])
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return {"success": True, "message": "Success", "data": UserProfile.model_validate(current_user)}


# =====================
# Passwords
# =====================

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise bad_request("Current password is incorrect", "INVALID_PASSWORD")

    _ensure_strong(body.new_password)

    current_user.password_hash = get_password_hash(body.new_password)
    db.commit()
    audit_service.record(db, "password_changed", request=request, user_id=current_user.id,
                         entity_type="user", entity_id=str(current_user.id))
    return {"success": True, "message": "Password changed successfully"}


@router.post("/forgot-password", response_model=MessageResponse, dependencies=[auth_rate_limit])
async def forgot_password(body: EmailBody, db: Session = Depends(get_db)):
    """Start a password reset; the reply is identical whether or not the email exists"""
    user = db.query(User).filter(User.email == body.email).first()

    if user is not None and user.is_active:
        user.reset_token = generate_random_token()
        user.reset_token_expiry = _now() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        db.commit()
        logger.info(f"Password reset token issued for user {user.id}")

    return {"success": True, "message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password", response_model=MessageResponse, dependencies=[auth_rate_limit])
async def reset_password(body: ResetPasswordRequest, request: Request, db: Session = Depends(get_db)):
    """Consume a reset token; also signs the account out everywhere"""
    _ensure_strong(body.password)

    user = db.query(User).filter(
        User.reset_token == body.token,
        User.reset_token_expiry > _now()
    ).first()
    if user is None:
        raise bad_request("Invalid or expired reset token", "INVALID_RESET_TOKEN")

    user.password_hash = get_password_hash(body.password)
    user.reset_token = None
    user.reset_token_expiry = None
    # Existing sessions must not survive a password reset
    user.refresh_token = None
    db.commit()

    logger.info(f"Password reset completed for user {user.id}")
    audit_service.record(db, "password_reset", request=request, user_id=user.id,
                         entity_type="user", entity_id=str(user.id))
    return {
        "success": True,
        "message": "Password has been reset successfully. Please log in with your new password.",
    }


# =====================
# Email verification
# =====================

@router.post("/resend-verification", response_model=MessageResponse, dependencies=[auth_rate_limit])
async def resend_verification(body: EmailBody, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email).first()
    if user is None:
        return {"success": True, "message": RESEND_VERIFICATION_MESSAGE}

    if user.email_verified:
        raise bad_request("Email is already verified", "ALREADY_VERIFIED")

    user.verification_token = generate_random_token()
    user.verification_expiry = _now() + timedelta(hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS)
    db.commit()
    logger.info(f"Verification token issued for user {user.id}")

    return {"success": True, "message": RESEND_VERIFICATION_MESSAGE}


@router.get("/verify-email/{token}", response_class=RedirectResponse)
async def verify_email(token: str, db: Session = Depends(get_db)):
    """Opened from the emailed link, so it answers with a redirect to the login page"""
    login_url = f"{settings.APP_URL.rstrip('/')}/login"

    user = db.query(User).filter(
        User.verification_token == token,
        User.verification_expiry > _now()
    ).first()
    if user is None:
        return RedirectResponse(f"{login_url}?error=invalid-or-expired-token")

    if user.email_verified:
        user.verification_token = None
        user.verification_expiry = None
        db.commit()
        return RedirectResponse(f"{login_url}?message=already-verified")

    user.email_verified = True
    user.email_verified_at = _now()
    user.verification_token = None
    user.verification_expiry = None
    db.commit()

    return RedirectResponse(f"{login_url}?message=email-verified")


# =====================
# Onboarding & account
# =====================

@router.get("/onboarding", response_model=Envelope[UserProfile])
async def get_onboarding(current_user: User = Depends(get_current_user)):
    return {"success": True, "message": "Success", "data": UserProfile.model_validate(current_user)}


@router.post("/onboarding", response_model=Envelope[ProfileWithTokens])
async def save_onboarding(
    body: OnboardingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Merge profile updates and optionally upgrade the user to organizer.

    When the role changes a new token pair is issued, so the role embedded
    in the client's tokens always matches the database.
    """
    provided = body.model_fields_set
    original_role = current_user.role

    if body.first_name:
        current_user.first_name = body.first_name
    if body.last_name:
        current_user.last_name = body.last_name
    if body.phone:
        current_user.phone = body.phone
    if "bio" in provided:
        current_user.bio = body.bio
    if "avatar_url" in provided:
        current_user.avatar_url = body.avatar_url or None

    # Preferences merge into what is stored instead of replacing it
    if body.preferences or body.payout_account:
        merged = dict(current_user.preferences or {})
        if body.preferences:
            merged.update(body.preferences)
        if body.payout_account:
            merged["payoutAccount"] = body.payout_account
        current_user.preferences = merged
    if body.notification_settings:
        current_user.notification_settings = body.notification_settings

    already_organizer = current_user.role in (UserRole.ORGANIZER.value, UserRole.ADMIN.value)
    if body.become_organizer and body.organizer_name and not already_organizer:
        slug = slugify(body.organizer_name)
        if not slug:
            raise bad_request("Organizer name must contain letters or numbers", "INVALID_ORGANIZER_NAME")

        taken = db.query(User).filter(
            User.organizer_slug == slug,
            User.id != current_user.id
        ).first()
        if taken:
            raise conflict("Organizer name is already taken. Please choose another.", "SLUG_EXISTS")

        current_user.role = UserRole.ORGANIZER.value
        current_user.organizer_slug = slug
        current_user.organizer_since = _now()

    if "organizer_name" in provided:
        current_user.organizer_name = body.organizer_name
    if "organizer_bio" in provided:
        current_user.organizer_bio = body.organizer_bio
    if "organizer_website" in provided:
        current_user.organizer_website = body.organizer_website
    if "organizer_logo" in provided:
        current_user.organizer_logo = body.organizer_logo or None
    if "organizer_socials" in provided:
        current_user.organizer_socials = (
            body.organizer_socials.model_dump(by_alias=True, exclude_none=True)
            if body.organizer_socials else None
        )

    access_token = refresh_token = None
    try:
        if current_user.role != original_role:
            access_token, refresh_token = session_service.issue_token_pair(db, current_user)
            logger.info(f"User {current_user.id} role changed {original_role} -> {current_user.role}")
        else:
            db.commit()
            db.refresh(current_user)
    except IntegrityError:
        # Unique slug index caught a concurrent claim
        db.rollback()
        raise conflict("Organizer name is already taken. Please choose another.", "SLUG_EXISTS")

    return {
        "success": True,
        "message": "Onboarding data saved successfully",
        "data": ProfileWithTokens(
            user=UserProfile.model_validate(current_user),
            access_token=access_token,
            refresh_token=refresh_token,
        ),
    }


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    body: DeleteAccountRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete: anonymise personal data and mark the account DELETED"""
    # OAuth-only accounts have no password; the typed confirmation suffices
    if current_user.password_hash and not verify_password(body.password or "", current_user.password_hash):
        raise unauthorized("Incorrect password", "INVALID_PASSWORD")

    user_id = current_user.id
    audit_service.record(db, "account_deleted", request=request, user_id=user_id,
                         entity_type="user", entity_id=str(user_id))

    current_user.status = UserStatus.DELETED.value
    current_user.email = f"deleted_{user_id}@deleted.eventskona.com"
    current_user.first_name = "Deleted"
    current_user.last_name = "User"
    current_user.phone = None
    current_user.bio = None
    current_user.avatar_url = None
    current_user.password_hash = None
    current_user.refresh_token = None
    current_user.auth_provider = None
    current_user.auth_provider_id = None
    current_user.preferences = None
    current_user.notification_settings = None
    current_user.organizer_name = None
    current_user.organizer_bio = None
    current_user.organizer_logo = None
    current_user.organizer_website = None
    current_user.organizer_socials = None
    db.commit()

    logger.info(f"Soft-deleted user {user_id}")
    return {"success": True, "message": "Account deleted successfully"}
