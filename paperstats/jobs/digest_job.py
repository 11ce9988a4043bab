"""
Periodic notification jobs: the weekly study summary and the evening streak
reminder. Both are enqueued on the rq queue from cron, e.g.::

    python -m paperstats.jobs.digest_job weekly
    python -m paperstats.jobs.digest_job reminders
"""
import logging
import sys
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select

from paperstats.core.database import SessionLocal
from paperstats.models.orm import User, UserStreak
from paperstats.services import aggregation
from paperstats.services.notifications import Notifier, get_notifier
from paperstats.services.streaks import current_day

logger = logging.getLogger(__name__)


def send_weekly_summaries(today: Optional[date] = None, session_factory=SessionLocal, notifier: Optional[Notifier] = None) -> int:
    """Queue a summary for every user who submitted a paper in the last week."""
    today = today or current_day()
    notifier = notifier or get_notifier()
    sent = 0
    db = session_factory()
    try:
        for user_id in db.scalars(select(User.id).order_by(User.id)).all():
            summary = aggregation.weekly_summary(db, user_id, today)
            if summary.papers_submitted == 0:
                continue
            if notifier.weekly_summary(db, user_id, summary) is not None:
                sent += 1
    finally:
        db.close()
    logger.info("Weekly summaries for %s: %d queued", today, sent)
    return sent


def send_streak_reminders(today: Optional[date] = None, session_factory=SessionLocal, notifier: Optional[Notifier] = None) -> int:
    """Remind users whose streak runs out unless they are active today."""
    today = today or current_day()
    notifier = notifier or get_notifier()
    sent = 0
    db = session_factory()
    try:
        at_risk = db.execute(
            select(UserStreak.user_id, UserStreak.current_streak)
            .where(UserStreak.last_activity_date == today - timedelta(days=1), UserStreak.current_streak > 0)
            .order_by(UserStreak.user_id)
        ).all()
        for user_id, streak in at_risk:
            if notifier.streak_reminder(db, user_id, streak) is not None:
                sent += 1
    finally:
        db.close()
    logger.info("Streak reminders for %s: %d queued", today, sent)
    return sent


if __name__ == "__main__":
    from paperstats.jobs.queue import queue

    jobs = {"weekly": send_weekly_summaries, "reminders": send_streak_reminders}
    name = sys.argv[1] if len(sys.argv) > 1 else "weekly"
    if name not in jobs:
        sys.exit(f"usage: python -m paperstats.jobs.digest_job [{'|'.join(jobs)}]")
    job = queue.enqueue(jobs[name])
    print(f"Enqueued {name} job {job.id}")
