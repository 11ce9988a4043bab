"""
Streak tracker.

A streak counts consecutive calendar days with at least one qualifying
activity (a paper submission or a daily check-in). The transition is decided
from the stored ``last_activity_date``:

=============  ===========================  ========================
phase          last_activity_date           on activity
=============  ===========================  ========================
FRESH          none                         streak = 1
ACTIVE_TODAY   today                        no-op
CONTINUABLE    yesterday                    streak + 1
BROKEN         before yesterday             streak = 1
=============  ===========================  ========================

Every real transition awards the base points, or base plus the milestone
bonus when the new streak length is a milestone. The write is a
compare-and-set on ``last_activity_date`` so two concurrent events on the
same day count once.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.config import settings
from paperstats.core.database import get_or_create
from paperstats.core.errors import StorageError
from paperstats.models.orm import UserStreak, utcnow
from paperstats.services.notifications import Notifier
from paperstats.services.points import PointsUpdate, add_points

logger = logging.getLogger(__name__)


class StreakPhase(str, enum.Enum):
    FRESH = "fresh"
    ACTIVE_TODAY = "active_today"
    CONTINUABLE = "continuable"
    BROKEN = "broken"


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None


@dataclass(frozen=True)
class StreakTransition:
    phase: StreakPhase
    before: StreakState
    after: StreakState
    points_awarded: int = 0
    milestone_bonus: int = 0

    @property
    def changed(self) -> bool:
        return self.phase is not StreakPhase.ACTIVE_TODAY


def current_day(tz: Optional[str] = None) -> date:
    return datetime.now(ZoneInfo(tz or settings.ACTIVITY_TIMEZONE)).date()


def classify(state: StreakState, today: date) -> StreakPhase:
    last = state.last_activity_date
    if last is None:
        return StreakPhase.FRESH
    # a date ahead of today (clock skew) counts as already active
    if last >= today:
        return StreakPhase.ACTIVE_TODAY
    if last == today - timedelta(days=1):
        return StreakPhase.CONTINUABLE
    return StreakPhase.BROKEN


def standing_streak(state: StreakState, today: date) -> int:
    """Streak length as of ``today``; a broken streak stands at 0 until the next activity."""
    return 0 if classify(state, today) is StreakPhase.BROKEN else state.current_streak


def points_for(new_streak: int, base_points: Optional[int] = None, milestones: Optional[Mapping[int, int]] = None) -> Tuple[int, int]:
    """Return ``(points, milestone_bonus)`` for reaching ``new_streak``."""
    base = settings.STREAK_BASE_POINTS if base_points is None else base_points
    table = settings.STREAK_MILESTONES if milestones is None else milestones
    bonus = table.get(new_streak, 0)
    return base + bonus, bonus


def advance(
    state: StreakState,
    today: date,
    base_points: Optional[int] = None,
    milestones: Optional[Mapping[int, int]] = None,
) -> StreakTransition:
    phase = classify(state, today)
    if phase is StreakPhase.ACTIVE_TODAY:
        return StreakTransition(phase=phase, before=state, after=state)

    new_streak = state.current_streak + 1 if phase is StreakPhase.CONTINUABLE else 1
    after = StreakState(
        current_streak=new_streak,
        longest_streak=max(state.longest_streak, new_streak),
        last_activity_date=today,
    )
    points, bonus = points_for(new_streak, base_points, milestones)
    return StreakTransition(phase=phase, before=state, after=after, points_awarded=points, milestone_bonus=bonus)


@dataclass
class StreakUpdate:
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date]
    points_awarded: int = 0
    milestone_bonus: int = 0
    already_counted: bool = False
    points: Optional[PointsUpdate] = None


def get_streak(db: Session, caller: CallerIdentity) -> UserStreak:
    row = get_or_create(db, UserStreak, caller.user_id, current_streak=0, longest_streak=0, last_activity_date=None)
    db.commit()
    return row


def _load_state(db: Session, user_id: int) -> StreakState:
    get_or_create(db, UserStreak, user_id, current_streak=0, longest_streak=0, last_activity_date=None)
    row = db.scalar(select(UserStreak).where(UserStreak.user_id == user_id).execution_options(populate_existing=True))
    return StreakState(row.current_streak, row.longest_streak, row.last_activity_date)


def record_activity(
    db: Session,
    caller: CallerIdentity,
    today: Optional[date] = None,
    notifier: Optional[Notifier] = None,
) -> StreakUpdate:
    """Apply one activity event for ``today`` and commit it with its points."""
    user_id = caller.user_id
    today = today or current_day()

    for attempt in range(1, settings.STREAK_CAS_RETRIES + 1):
        state = _load_state(db, user_id)
        transition = advance(state, today)
        if not transition.changed:
            db.commit()
            return StreakUpdate(
                current_streak=state.current_streak, longest_streak=state.longest_streak,
                last_activity_date=state.last_activity_date, already_counted=True,
            )

        if state.last_activity_date is None:
            guard = UserStreak.last_activity_date.is_(None)
        else:
            guard = UserStreak.last_activity_date == state.last_activity_date
        after = transition.after
        result = db.execute(
            update(UserStreak)
            .where(UserStreak.user_id == user_id, guard)
            .values(
                current_streak=after.current_streak,
                longest_streak=after.longest_streak,
                last_activity_date=after.last_activity_date,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.info("Streak write for user %s lost a race (attempt %d)", user_id, attempt)
            continue

        points = add_points(db, user_id, transition.points_awarded)
        db.commit()
        logger.info(
            "Streak for user %s: %s -> %d (longest %d), +%d points",
            user_id, transition.phase.value, after.current_streak, after.longest_streak, transition.points_awarded,
        )
        if transition.milestone_bonus and notifier is not None:
            notifier.streak_milestone(db, user_id, after.current_streak, transition.milestone_bonus)
        return StreakUpdate(
            current_streak=after.current_streak, longest_streak=after.longest_streak,
            last_activity_date=after.last_activity_date, points_awarded=transition.points_awarded,
            milestone_bonus=transition.milestone_bonus, points=points,
        )

    raise StorageError("Streak update kept conflicting, retry the request")
