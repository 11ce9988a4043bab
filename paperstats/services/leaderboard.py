import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.cache import LeaderboardCache
from paperstats.core.config import settings
from paperstats.core.errors import NotFoundError
from paperstats.models.orm import User, UserPoints

logger = logging.getLogger(__name__)


def rank(db: Session, cache: Optional[LeaderboardCache] = None, limit: Optional[int] = None) -> List[dict]:
    """Opted-in users by total points, highest first; ties go to the lower user id.

    Users without a points row have not scored yet and are not listed. The
    cached snapshot always holds the full board; ``limit`` only slices it.
    """
    limit = min(limit or settings.LEADERBOARD_SIZE, settings.LEADERBOARD_SIZE)
    if cache is not None:
        snapshot = cache.get()
        if snapshot is not None:
            return snapshot[:limit]

    rows = db.execute(
        select(User.id, User.username, UserPoints.total_points, UserPoints.level)
        .join(UserPoints, UserPoints.user_id == User.id)
        .where(User.leaderboard_opt_in.is_(True))
        .order_by(UserPoints.total_points.desc(), User.id.asc())
        .limit(settings.LEADERBOARD_SIZE)
    ).all()
    entries = [
        {"rank": i, "username": username, "total_points": points, "level": level}
        for i, (_, username, points, level) in enumerate(rows, start=1)
    ]
    if cache is not None:
        cache.set(entries)
    return entries[:limit]


def set_opt_in(db: Session, caller: CallerIdentity, is_public: bool, cache: Optional[LeaderboardCache] = None) -> bool:
    result = db.execute(
        update(User).where(User.id == caller.user_id).values(leaderboard_opt_in=is_public)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise NotFoundError("User not found")
    db.commit()
    logger.info("User %s leaderboard visibility -> %s", caller.user_id, "public" if is_public else "private")
    if cache is not None:
        cache.invalidate()
    return is_public
