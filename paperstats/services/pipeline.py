"""
Submission pipeline.

One submission event runs these steps in order, each committing on its own:

1. record the submission (marks and quota);
2. recompute the caller's stats;
3. evaluate badges against the fresh stats;
4. count the day towards the streak and award its points.

A failing step propagates and skips the steps after it. Steps that already
committed stay applied, and each is safe to run again.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Mapping, Optional

from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.services import aggregation, badges, streaks, submissions
from paperstats.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    submission: submissions.SubmissionResult
    overall_score: int
    paper_count: int
    previous_score: float
    badges_awarded: List[str] = field(default_factory=list)
    streak: Optional[streaks.StreakUpdate] = None


def process_submission(
    db: Session,
    caller: CallerIdentity,
    paper_id: int,
    marks: Mapping[int, int],
    today: Optional[date] = None,
    notifier: Optional[Notifier] = None,
) -> SubmissionOutcome:
    previous = submissions.previous_score(db, caller.user_id, exclude_paper_id=paper_id)
    result = submissions.record_submission(db, caller, paper_id, marks)

    stats = aggregation.compute_stats(db, caller)
    overall = aggregation.round_half_up(stats.overall_score)

    # thresholds are judged on the exact score, not the displayed one
    facts = badges.BadgeFacts(overall_score=stats.overall_score, paper_count=stats.paper_count, previous_score=previous)
    awarded = badges.evaluate(db, caller.user_id, facts, notifier=notifier)

    streak = streaks.record_activity(db, caller, today=today, notifier=notifier)

    logger.info(
        "Processed submission %s for user %s: overall %d, %d badge(s), streak %d",
        result.submission_id, caller.user_id, overall, len(awarded), streak.current_streak,
    )
    return SubmissionOutcome(
        submission=result, overall_score=overall, paper_count=stats.paper_count,
        previous_score=previous, badges_awarded=awarded, streak=streak,
    )
