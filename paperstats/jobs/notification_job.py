import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from paperstats.core.database import SessionLocal
from paperstats.models.orm import EmailNotification, NotificationStatus, User, utcnow

logger = logging.getLogger(__name__)


def deliver_notification(notification_id: int, session_factory=SessionLocal) -> str:
    """Deliver one queued notification and record the outcome.

    Delivery is a log line; plugging in a mail provider only changes
    ``_send``. Re-running for a row already sent is a no-op.
    """
    db = session_factory()
    try:
        row = db.get(EmailNotification, notification_id)
        if row is None:
            logger.warning("Notification %s not found", notification_id)
            return "missing"
        if row.status == NotificationStatus.SENT.value:
            return row.status
        user = db.get(User, row.user_id)
        try:
            _send(user.email if user else None, row.subject, row.payload)
            row.status = NotificationStatus.SENT.value
            row.sent_at = utcnow()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            _mark_failed(db, notification_id)
            raise
        return row.status
    finally:
        db.close()


def _send(email, subject: str, payload) -> None:
    data = json.loads(payload) if payload else {}
    logger.info("[EMAIL] to=%s subject=%r data=%s", email, subject, data)


def _mark_failed(db, notification_id: int) -> None:
    try:
        row = db.get(EmailNotification, notification_id)
        if row is not None:
            row.status = NotificationStatus.FAILED.value
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not mark notification %s as failed", notification_id)
