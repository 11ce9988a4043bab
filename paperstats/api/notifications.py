from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity, get_current_user
from paperstats.core.database import get_db
from paperstats.services import aggregation, notifications
from paperstats.services.streaks import current_day

router = APIRouter()


class PreferencesOut(BaseModel):
    streakReminders: bool
    weeklySummaries: bool
    badgeCelebrations: bool


class PreferencesIn(BaseModel):
    streakReminders: Optional[bool] = None
    weeklySummaries: Optional[bool] = None
    badgeCelebrations: Optional[bool] = None


class NotificationOut(BaseModel):
    id: int
    notification_type: str
    subject: str
    status: str
    created_at: datetime
    sent_at: Optional[datetime] = None


class HistoryOut(BaseModel):
    notifications: List[NotificationOut]
    total: int


class WeeklySummaryOut(BaseModel):
    papersSubmitted: int
    marksObtained: int
    averageScore: float
    topTopics: List[str]
    currentStreak: int


def _prefs_out(p) -> PreferencesOut:
    return PreferencesOut(streakReminders=p.streak_reminders, weeklySummaries=p.weekly_summaries, badgeCelebrations=p.badge_celebrations)


@router.get("/preferences", response_model=PreferencesOut)
def get_preferences(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    return _prefs_out(notifications.get_preferences(db, caller))


@router.put("/preferences", response_model=PreferencesOut)
def update_preferences(payload: PreferencesIn, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    prefs = notifications.update_preferences(
        db, caller,
        streak_reminders=payload.streakReminders,
        weekly_summaries=payload.weeklySummaries,
        badge_celebrations=payload.badgeCelebrations,
    )
    return _prefs_out(prefs)


@router.get("/history", response_model=HistoryOut)
def get_history(
    limit: int = 20,
    offset: int = 0,
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = notifications.history(db, caller, limit=limit, offset=offset)
    return HistoryOut(
        notifications=[
            NotificationOut(
                id=r.id, notification_type=r.notification_type, subject=r.subject,
                status=r.status, created_at=r.created_at, sent_at=r.sent_at,
            )
            for r in rows
        ],
        total=len(rows),
    )


@router.get("/weekly-summary", response_model=WeeklySummaryOut)
def preview_weekly_summary(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    s = aggregation.weekly_summary(db, caller.user_id, current_day())
    return WeeklySummaryOut(
        papersSubmitted=s.papers_submitted, marksObtained=s.marks_obtained,
        averageScore=round(s.average_score, 1), topTopics=s.top_topics, currentStreak=s.current_streak,
    )
