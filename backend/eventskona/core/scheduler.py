"""
Background scheduler for periodic tasks.

Jobs:
- Sweep expired rate-limit windows: every RATE_LIMIT_SWEEP_MINUTES (5 by default)
- Purge expired reset and verification tokens: every TOKEN_PURGE_INTERVAL_MINUTES (hourly by default)
"""

from datetime import datetime, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from eventskona.core.config import settings
from eventskona.core.database import SessionLocal
from eventskona.core.rate_limit import rate_limiter
from eventskona.models.user import User
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def sweep_rate_limits_job():
    """Drop rate-limit entries whose window has already closed."""
    removed = rate_limiter.sweep()
    if removed:
        logger.debug(f"Rate limit sweep removed {removed} expired entries")


def purge_expired_tokens_job():
    """
    Clear single-use tokens that can no longer be redeemed.

    Redemption already rejects expired tokens; this only stops dead values
    from lingering in the users table.
    """
    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)

        reset_cleared = (
            db.query(User)
            .filter(User.reset_token.isnot(None), User.reset_token_expiry < now)
            .update({User.reset_token: None, User.reset_token_expiry: None}, synchronize_session=False)
        )
        verification_cleared = (
            db.query(User)
            .filter(User.verification_token.isnot(None), User.verification_expiry < now)
            .update({User.verification_token: None, User.verification_expiry: None}, synchronize_session=False)
        )
        db.commit()

        if reset_cleared or verification_cleared:
            logger.info(
                f"Token purge completed: cleared {reset_cleared} reset tokens, "
                f"{verification_cleared} verification tokens"
            )
        else:
            logger.info("Token purge completed: nothing expired")

    except Exception as e:
        logger.error(f"Error in purge_expired_tokens_job: {str(e)}")
        db.rollback()
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    Called from the FastAPI lifespan on startup.
    """
    if not scheduler.running:
        scheduler.add_job(
            sweep_rate_limits_job,
            trigger=IntervalTrigger(minutes=settings.RATE_LIMIT_SWEEP_MINUTES),
            id="sweep_rate_limits",
            name="Sweep expired rate limit windows",
            replace_existing=True
        )
        scheduler.add_job(
            purge_expired_tokens_job,
            trigger=IntervalTrigger(minutes=settings.TOKEN_PURGE_INTERVAL_MINUTES),
            id="purge_expired_tokens",
            name="Purge expired reset/verification tokens",
            replace_existing=True
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started. Rate limit sweep every {settings.RATE_LIMIT_SWEEP_MINUTES} min, "
            f"token purge every {settings.TOKEN_PURGE_INTERVAL_MINUTES} min."
        )


def stop_scheduler():
    """
    Stop the background scheduler.

    Called from the FastAPI lifespan on shutdown.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
