import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.errors import NotFoundError, ValidationError
from paperstats.models.orm import MistakeLog, MistakeType, Question, Submission

logger = logging.getLogger(__name__)

TOP_TOPICS = 10


@dataclass
class MistakeTypeCount:
    mistake_type: str
    count: int
    percentage: float


@dataclass
class MistakeAnalysis:
    total: int = 0
    by_type: List[MistakeTypeCount] = field(default_factory=list)
    by_topic: List[dict] = field(default_factory=list)


def log_mistake(
    db: Session,
    caller: CallerIdentity,
    question_id: int,
    submission_id: int,
    topic: str,
    mistake_type: str,
    description: Optional[str] = None,
) -> MistakeLog:
    try:
        kind = MistakeType(mistake_type)
    except ValueError:
        raise ValidationError(f"Unknown mistake type '{mistake_type}'", field="mistakeType")
    if not topic or not topic.strip():
        raise ValidationError("Topic is required", field="topic")

    submission = db.get(Submission, submission_id)
    if submission is None or submission.user_id != caller.user_id:
        raise NotFoundError(f"Submission {submission_id} not found")
    question = db.get(Question, question_id)
    if question is None or question.paper_id != submission.paper_id:
        raise NotFoundError(f"Question {question_id} not found on this paper")

    row = MistakeLog(
        user_id=caller.user_id, question_id=question_id, submission_id=submission_id,
        topic=topic.strip(), mistake_type=kind.value, description=description,
    )
    db.add(row)
    db.commit()
    logger.info("User %s logged a %s mistake on question %s", caller.user_id, kind.value, question_id)
    return row


def mistake_analysis(db: Session, caller: CallerIdentity) -> MistakeAnalysis:
    rows = db.execute(
        select(MistakeLog.mistake_type, MistakeLog.topic).where(MistakeLog.user_id == caller.user_id)
    ).all()
    if not rows:
        return MistakeAnalysis()

    total = len(rows)
    types = Counter(r[0] for r in rows)
    topics = Counter(r[1] for r in rows)
    by_type = [
        MistakeTypeCount(mistake_type=t, count=n, percentage=round(100.0 * n / total, 1))
        for t, n in sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    by_topic = [
        {"topic": t, "count": n}
        for t, n in sorted(topics.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_TOPICS]
    ]
    return MistakeAnalysis(total=total, by_type=by_type, by_topic=by_topic)
