from datetime import date, datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity, get_current_user
from paperstats.core.cache import LeaderboardCache, get_leaderboard_cache
from paperstats.core.database import get_db
from paperstats.models.orm import MistakeType
from paperstats.services import badges, leaderboard, mistakes, plans, points, streaks
from paperstats.services.notifications import Notifier, get_notifier

router = APIRouter()


class StreakOut(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date] = None


class CheckinOut(BaseModel):
    success: bool
    message: str
    pointsAwarded: int
    alreadyCounted: bool
    streak: StreakOut


class BadgeOut(BaseModel):
    badge_id: str
    badge_name: str
    badge_description: Optional[str] = None
    earned_at: datetime


class AwardIn(BaseModel):
    badgeId: str


class AwardOut(BaseModel):
    success: bool
    badge: Optional[BadgeOut] = None


class PointsOut(BaseModel):
    total_points: int
    level: int
    experience: int


class LeaderboardEntry(BaseModel):
    rank: int
    username: str
    total_points: int
    level: int


class ToggleIn(BaseModel):
    isPublic: bool


class ToggleOut(BaseModel):
    success: bool
    isPublic: bool


class PlanOut(BaseModel):
    plan_type: str
    max_papers: int
    papers_submitted: int


class UpgradeIn(BaseModel):
    planType: Literal["premium", "pro"]


class MistakeIn(BaseModel):
    questionId: int
    submissionId: int
    topic: str
    mistakeType: MistakeType
    description: Optional[str] = None


class MistakeOut(BaseModel):
    id: int
    question_id: int
    submission_id: int
    topic: str
    mistake_type: str
    description: Optional[str] = None
    created_at: datetime


class MistakeTypeOut(BaseModel):
    mistake_type: str
    count: int
    percentage: float


class TopicCountOut(BaseModel):
    topic: str
    count: int


class MistakeAnalysisOut(BaseModel):
    total: int
    byType: List[MistakeTypeOut]
    byTopic: List[TopicCountOut]


def _badge_out(row) -> BadgeOut:
    return BadgeOut(badge_id=row.badge_id, badge_name=row.badge_name, badge_description=row.badge_description, earned_at=row.earned_at)


# ---------- Streaks ----------

@router.get("/streaks", response_model=StreakOut)
def get_streak(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    row = streaks.get_streak(db, caller)
    return StreakOut(current_streak=row.current_streak, longest_streak=row.longest_streak, last_activity_date=row.last_activity_date)


@router.post("/streaks/update", response_model=StreakOut)
def update_streak(
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    result = streaks.record_activity(db, caller, notifier=notifier)
    return StreakOut(current_streak=result.current_streak, longest_streak=result.longest_streak, last_activity_date=result.last_activity_date)


@router.post("/daily-checkin", response_model=CheckinOut)
def daily_checkin(
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    result = streaks.record_activity(db, caller, notifier=notifier)
    if result.already_counted:
        message = "Already checked in today"
    else:
        message = f"Checked in! {result.current_streak}-day streak"
    return CheckinOut(
        success=True, message=message, pointsAwarded=result.points_awarded, alreadyCounted=result.already_counted,
        streak=StreakOut(current_streak=result.current_streak, longest_streak=result.longest_streak, last_activity_date=result.last_activity_date),
    )


# ---------- Badges ----------

@router.get("/badges", response_model=List[BadgeOut])
def get_badges(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    return [_badge_out(b) for b in badges.list_badges(db, caller.user_id)]


@router.post("/badges/award", response_model=AwardOut)
def award_badge(
    payload: AwardIn,
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    row = badges.grant(db, caller.user_id, payload.badgeId, notifier=notifier)
    if row is None:
        return AwardOut(success=False, badge=None)
    return AwardOut(success=True, badge=_badge_out(row))


# ---------- Points & leaderboard ----------

@router.get("/points", response_model=PointsOut)
def get_points(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    row = points.get_points(db, caller.user_id)
    db.commit()
    return PointsOut(total_points=row.total_points, level=row.level, experience=row.experience)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: Optional[LeaderboardCache] = Depends(get_leaderboard_cache),
):
    return leaderboard.rank(db, cache=cache)


@router.post("/leaderboard/toggle", response_model=ToggleOut)
def toggle_leaderboard(
    payload: ToggleIn,
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: Optional[LeaderboardCache] = Depends(get_leaderboard_cache),
):
    is_public = leaderboard.set_opt_in(db, caller, payload.isPublic, cache=cache)
    return ToggleOut(success=True, isPublic=is_public)


# ---------- Plan ----------

@router.get("/plan", response_model=PlanOut)
def get_plan(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    plan = plans.get_plan(db, caller)
    return PlanOut(plan_type=plan.plan_type, max_papers=plan.max_papers, papers_submitted=plan.papers_submitted)


@router.post("/plan/upgrade", response_model=PlanOut)
def upgrade_plan(payload: UpgradeIn, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    plan = plans.upgrade_plan(db, caller, payload.planType)
    return PlanOut(plan_type=plan.plan_type, max_papers=plan.max_papers, papers_submitted=plan.papers_submitted)


# ---------- Mistakes ----------

@router.post("/mistakes", response_model=MistakeOut, status_code=201)
def log_mistake(payload: MistakeIn, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    row = mistakes.log_mistake(
        db, caller, question_id=payload.questionId, submission_id=payload.submissionId,
        topic=payload.topic, mistake_type=payload.mistakeType.value, description=payload.description,
    )
    return MistakeOut(
        id=row.id, question_id=row.question_id, submission_id=row.submission_id, topic=row.topic,
        mistake_type=row.mistake_type, description=row.description, created_at=row.created_at,
    )


@router.get("/mistakes/analysis", response_model=MistakeAnalysisOut)
def get_mistake_analysis(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    analysis = mistakes.mistake_analysis(db, caller)
    return MistakeAnalysisOut(
        total=analysis.total,
        byType=[MistakeTypeOut(mistake_type=m.mistake_type, count=m.count, percentage=m.percentage) for m in analysis.by_type],
        byTopic=[TopicCountOut(**t) for t in analysis.by_topic],
    )
