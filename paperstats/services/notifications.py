import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.database import get_or_create
from paperstats.core.errors import ValidationError
from paperstats.jobs.notification_job import deliver_notification
from paperstats.models.orm import EmailNotification, NotificationPreference, NotificationStatus

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = ("streak_reminders", "weekly_summaries", "badge_celebrations")


class Notifier:
    """Queues celebration notifications.

    Every call is best effort: failures are logged and swallowed so the state
    transition that triggered the notification stays applied. Call only after
    that transition has been committed.
    """

    def __init__(self, queue=None):
        self.queue = queue

    def notify(
        self,
        db: Session,
        user_id: int,
        notification_type: str,
        subject: str,
        data: Dict[str, Any],
        preference: Optional[str] = None,
    ) -> Optional[int]:
        try:
            if preference and not _wants(db, user_id, preference):
                logger.debug("User %s opted out of %s", user_id, preference)
                return None
            row = EmailNotification(
                user_id=user_id, notification_type=notification_type, subject=subject,
                payload=json.dumps(data), status=NotificationStatus.QUEUED.value,
            )
            db.add(row)
            db.commit()
            if self.queue is not None:
                self.queue.enqueue(deliver_notification, row.id)
            return row.id
        except Exception:
            db.rollback()
            logger.exception("Failed to queue %s notification for user %s", notification_type, user_id)
            return None

    def badge_awarded(self, db: Session, user_id: int, badge_id: str, name: str, description: str) -> Optional[int]:
        return self.notify(db, user_id, "badge_celebration", f"You earned a new badge: {name}!",
                           {"badgeId": badge_id, "badgeName": name, "badgeDescription": description},
                           preference="badge_celebrations")

    def streak_milestone(self, db: Session, user_id: int, current_streak: int, bonus: int) -> Optional[int]:
        return self.notify(db, user_id, "streak_milestone", f"{current_streak}-day streak!",
                           {"currentStreak": current_streak, "bonus": bonus},
                           preference="streak_reminders")

    def streak_reminder(self, db: Session, user_id: int, current_streak: int) -> Optional[int]:
        return self.notify(db, user_id, "streak_reminder", f"Keep your {current_streak}-day streak alive!",
                           {"currentStreak": current_streak},
                           preference="streak_reminders")

    def weekly_summary(self, db: Session, user_id: int, summary) -> Optional[int]:
        return self.notify(db, user_id, "weekly_summary", "Your weekly study summary",
                           {"papersSubmitted": summary.papers_submitted, "marksObtained": summary.marks_obtained,
                            "averageScore": round(summary.average_score, 1), "topTopics": summary.top_topics,
                            "currentStreak": summary.current_streak},
                           preference="weekly_summaries")


def get_notifier() -> Notifier:
    from paperstats.jobs.queue import queue

    return Notifier(queue)


def _wants(db: Session, user_id: int, preference: str) -> bool:
    prefs = db.get(NotificationPreference, user_id)
    return True if prefs is None else bool(getattr(prefs, preference))


# ========== Preferences & history ==========

def get_preferences(db: Session, caller: CallerIdentity) -> NotificationPreference:
    prefs = get_or_create(db, NotificationPreference, caller.user_id,
                          streak_reminders=True, weekly_summaries=True, badge_celebrations=True)
    db.commit()
    return prefs


def update_preferences(db: Session, caller: CallerIdentity, **changes: Optional[bool]) -> NotificationPreference:
    unknown = set(changes) - set(PREFERENCE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown preference '{sorted(unknown)[0]}'", field=sorted(unknown)[0])

    prefs = get_or_create(db, NotificationPreference, caller.user_id,
                          streak_reminders=True, weekly_summaries=True, badge_celebrations=True)
    for name, value in changes.items():
        if value is not None:
            setattr(prefs, name, bool(value))
    db.commit()
    return prefs


def history(db: Session, caller: CallerIdentity, limit: int = 20, offset: int = 0) -> List[EmailNotification]:
    if limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100", field="limit")
    if offset < 0:
        raise ValidationError("offset cannot be negative", field="offset")
    return list(db.scalars(
        select(EmailNotification)
        .where(EmailNotification.user_id == caller.user_id)
        .order_by(EmailNotification.created_at.desc(), EmailNotification.id.desc())
        .limit(limit)
        .offset(offset)
    ))
