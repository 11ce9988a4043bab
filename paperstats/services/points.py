"""
Points ledger. Append only: points and experience accrue together and never
decrease; the level is derived from experience.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from paperstats.core.config import settings
from paperstats.core.database import get_or_create
from paperstats.core.errors import ValidationError
from paperstats.models.orm import UserPoints

logger = logging.getLogger(__name__)


def level_for(experience: int, points_per_level: Optional[int] = None) -> int:
    per_level = points_per_level or settings.POINTS_PER_LEVEL
    return experience // per_level + 1


@dataclass
class PointsUpdate:
    total_points: int
    experience: int
    level: int
    leveled_up: bool


def get_points(db: Session, user_id: int) -> UserPoints:
    return get_or_create(db, UserPoints, user_id, total_points=0, experience=0, level=1)


def add_points(db: Session, user_id: int, amount: int) -> PointsUpdate:
    """Credit ``amount`` to the user's ledger inside the caller's transaction.

    The ledger row is locked for the read-modify-write; the caller commits.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Points must be an integer", field="amount")
    if amount < 0:
        raise ValidationError("Points cannot be negative", field="amount")

    get_points(db, user_id)
    row = db.scalar(
        select(UserPoints).where(UserPoints.user_id == user_id).with_for_update().execution_options(populate_existing=True)
    )
    level_before = level_for(row.experience)
    row.total_points += amount
    row.experience += amount
    row.level = level_for(row.experience)
    db.flush()

    leveled_up = row.level > level_before
    if leveled_up:
        logger.info("User %s leveled up: %d -> %d", user_id, level_before, row.level)
    logger.debug("Added %d points for user %s (total %d)", amount, user_id, row.total_points)
    return PointsUpdate(total_points=row.total_points, experience=row.experience, level=row.level, leveled_up=leveled_up)
