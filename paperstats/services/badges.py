"""
Badge evaluator.

Rules are independent predicates over the facts of one submission event; any
subset may fire. Granting is guarded by the (user, badge_id) unique
constraint so evaluating the same facts twice grants nothing new.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperstats.core.errors import ValidationError
from paperstats.models.orm import UserBadge
from paperstats.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeFacts:
    overall_score: float
    paper_count: int
    previous_score: float = 0


class BadgeRule(NamedTuple):
    name: str
    description: str
    earned: Callable[[BadgeFacts], bool]


BADGES: Dict[str, BadgeRule] = {
    "first_paper": BadgeRule("First Step", "Submitted your first past paper",
                             lambda f: f.paper_count == 1),
    "five_papers": BadgeRule("On a Roll", "Submitted 5 past papers",
                             lambda f: f.paper_count == 5),
    "ten_papers": BadgeRule("Paper Master", "Submitted 10 past papers",
                            lambda f: f.paper_count == 10),
    "perfect_score": BadgeRule("Perfect!", "Got 100% on a paper",
                               lambda f: f.overall_score == 100),
    "grade_a": BadgeRule("A Grade Achievement", "Achieved an A grade",
                         lambda f: 80 <= f.overall_score < 90),
    "grade_a_star": BadgeRule("A* Master", "Achieved an A* grade",
                              lambda f: f.overall_score >= 90),
    "improvement_10": BadgeRule("Rising Star", "Improved by 10% from last paper",
                                lambda f: f.previous_score > 0 and f.overall_score - f.previous_score >= 10),
}


def earned_badges(facts: BadgeFacts) -> List[str]:
    return [badge_id for badge_id, rule in BADGES.items() if rule.earned(facts)]


def award_badge(db: Session, user_id: int, badge_id: str) -> Optional[UserBadge]:
    """Grant ``badge_id`` in the caller's transaction.

    Returns the new row, or None when the user already holds the badge.
    """
    rule = BADGES.get(badge_id)
    if rule is None:
        raise ValidationError(f"Unknown badge '{badge_id}'", field="badgeId")

    existing = db.scalar(select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id))
    if existing is not None:
        return None
    try:
        with db.begin_nested():
            row = UserBadge(user_id=user_id, badge_id=badge_id, badge_name=rule.name, badge_description=rule.description)
            db.add(row)
    except IntegrityError:
        logger.debug("Badge %s already granted to user %s", badge_id, user_id)
        return None
    return row


def grant(db: Session, user_id: int, badge_id: str, notifier: Optional[Notifier] = None) -> Optional[UserBadge]:
    """Grant one badge, commit, and celebrate it if it is new."""
    row = award_badge(db, user_id, badge_id)
    db.commit()
    if row is not None:
        logger.info("User %s earned badge %s", user_id, badge_id)
        if notifier is not None:
            notifier.badge_awarded(db, user_id, badge_id, row.badge_name, row.badge_description)
    return row


def evaluate(db: Session, user_id: int, facts: BadgeFacts, notifier: Optional[Notifier] = None) -> List[str]:
    """Grant every badge ``facts`` qualify for; return the newly granted ids."""
    new_rows = []
    for badge_id in earned_badges(facts):
        row = award_badge(db, user_id, badge_id)
        if row is not None:
            new_rows.append(row)
    db.commit()

    for row in new_rows:
        logger.info("User %s earned badge %s", user_id, row.badge_id)
        if notifier is not None:
            notifier.badge_awarded(db, user_id, row.badge_id, row.badge_name, row.badge_description)
    return [row.badge_id for row in new_rows]


def list_badges(db: Session, user_id: int) -> List[UserBadge]:
    return list(db.scalars(
        select(UserBadge).where(UserBadge.user_id == user_id).order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    ))
