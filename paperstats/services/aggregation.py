"""
Aggregation engine: turns a user's question-level marks into topic accuracy,
sub-topic weakness and an overall score.

Two weightings are used on purpose:

* topic and sub-topic accuracy are mark weighted (every mark is one sample);
* the overall score is paper weighted (every submitted paper is one sample,
  whatever its size).
"""
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.models.orm import Paper, Question, Response, Submission, UserStreak
from paperstats.services.plans import require_premium
from paperstats.services.streaks import StreakState, standing_streak

logger = logging.getLogger(__name__)


def accuracy(marks_obtained: float, marks_available: float) -> float:
    """Percentage of available marks obtained; 0 when nothing was available."""
    if marks_available <= 0:
        return 0.0
    return 100.0 * marks_obtained / marks_available


def round_half_up(value: float) -> int:
    """Whole-number score for display; halves round up (62.5 -> 63)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ResponseFact:
    question_id: int
    topic: str
    sub_topic: Optional[str]
    marks_obtained: int
    marks_available: int


@dataclass
class TopicAccuracy:
    topic: str
    marks_obtained: int = 0
    marks_available: int = 0

    @property
    def accuracy(self) -> float:
        return accuracy(self.marks_obtained, self.marks_available)


@dataclass
class SubTopicWeakness:
    sub_topic: str
    marks_obtained: int = 0
    marks_available: int = 0

    @property
    def marks_lost(self) -> int:
        return self.marks_available - self.marks_obtained

    @property
    def accuracy(self) -> float:
        return accuracy(self.marks_obtained, self.marks_available)


@dataclass
class PaperScore:
    submission_id: int
    paper_id: int
    exam_board: str
    year: int
    paper_number: int
    total_obtained: int
    total_marks: int
    submission_date: datetime

    @property
    def percentage(self) -> float:
        return accuracy(self.total_obtained, self.total_marks)


@dataclass
class PerformanceStats:
    overall_score: float = 0.0
    paper_count: int = 0
    topics: List[TopicAccuracy] = field(default_factory=list)
    sub_topic_weakness: List[SubTopicWeakness] = field(default_factory=list)


@dataclass
class MonthlyProgress:
    month: date
    avg_score: float
    paper_count: int


@dataclass
class WeeklySummary:
    papers_submitted: int = 0
    marks_obtained: int = 0
    average_score: float = 0.0
    top_topics: List[str] = field(default_factory=list)
    current_streak: int = 0


# ========== Pure aggregation ==========

def aggregate_topics(facts: Iterable[ResponseFact]) -> List[TopicAccuracy]:
    """Mark-weighted accuracy per topic, best topic first."""
    topics: Dict[str, TopicAccuracy] = OrderedDict()
    for f in facts:
        t = topics.setdefault(f.topic, TopicAccuracy(f.topic))
        t.marks_obtained += f.marks_obtained
        t.marks_available += f.marks_available
    return sorted(topics.values(), key=lambda t: (-t.accuracy, t.topic))


def aggregate_sub_topics(facts: Iterable[ResponseFact]) -> List[SubTopicWeakness]:
    """Sub-topics ranked by marks lost, so high-volume leaks surface first."""
    subs: Dict[str, SubTopicWeakness] = OrderedDict()
    for f in facts:
        if not f.sub_topic:
            continue
        s = subs.setdefault(f.sub_topic, SubTopicWeakness(f.sub_topic))
        s.marks_obtained += f.marks_obtained
        s.marks_available += f.marks_available
    return sorted(subs.values(), key=lambda s: (-s.marks_lost, s.sub_topic))


def overall_score(papers: Sequence[PaperScore]) -> float:
    """Mean of per-paper percentages."""
    if not papers:
        return 0.0
    return sum(p.percentage for p in papers) / len(papers)


def monthly_averages(papers: Iterable[PaperScore]) -> List[MonthlyProgress]:
    buckets: Dict[date, List[float]] = {}
    for p in papers:
        month = date(p.submission_date.year, p.submission_date.month, 1)
        buckets.setdefault(month, []).append(p.percentage)
    return [
        MonthlyProgress(month=m, avg_score=sum(v) / len(v), paper_count=len(v))
        for m, v in sorted(buckets.items())
    ]


def summarise_week(papers: Iterable[PaperScore], topics: Sequence[TopicAccuracy], since: date) -> WeeklySummary:
    """Papers submitted on or after ``since`` plus the three best topics overall."""
    recent = [p for p in papers if p.submission_date.date() >= since]
    return WeeklySummary(
        papers_submitted=len(recent),
        marks_obtained=sum(p.total_obtained for p in recent),
        average_score=overall_score(recent),
        top_topics=[t.topic for t in topics[:3]],
    )


# ========== Store reads ==========

def load_response_facts(db: Session, user_id: int) -> List[ResponseFact]:
    rows = db.execute(
        select(Question.id, Question.topic, Question.sub_topic, Response.marks_obtained, Question.marks_available)
        .select_from(Response)
        .join(Response.question)
        .join(Response.submission)
        .where(Submission.user_id == user_id)
    ).all()
    return [ResponseFact(question_id=r[0], topic=r[1], sub_topic=r[2], marks_obtained=r[3], marks_available=r[4]) for r in rows]


def load_paper_scores(db: Session, user_id: int) -> List[PaperScore]:
    """Every live submission of the user, newest first.

    A paper's total is the sum of its questions' marks, or the stored
    ``total_marks`` when the paper has no questions on record.
    """
    totals = (
        select(Question.paper_id, func.sum(Question.marks_available).label("total"))
        .group_by(Question.paper_id)
        .subquery()
    )
    rows = db.execute(
        select(Submission, Paper, totals.c.total)
        .join(Paper, Submission.paper_id == Paper.id)
        .outerjoin(totals, totals.c.paper_id == Paper.id)
        .where(Submission.user_id == user_id)
        .order_by(Submission.submission_date.desc(), Submission.id.desc())
    ).all()
    return [
        PaperScore(
            submission_id=s.id, paper_id=p.id, exam_board=p.exam_board, year=p.year,
            paper_number=p.paper_number, total_obtained=s.total_obtained,
            total_marks=int(total) if total is not None else p.total_marks,
            submission_date=s.submission_date,
        )
        for s, p, total in rows
    ]


def compute_stats(db: Session, caller: CallerIdentity) -> PerformanceStats:
    facts = load_response_facts(db, caller.user_id)
    papers = load_paper_scores(db, caller.user_id)
    stats = PerformanceStats(
        overall_score=overall_score(papers),
        paper_count=len(papers),
        topics=aggregate_topics(facts),
        sub_topic_weakness=aggregate_sub_topics(facts),
    )
    logger.debug("Stats for user %s: %d papers, %d topics", caller.user_id, stats.paper_count, len(stats.topics))
    return stats


def monthly_progress(db: Session, caller: CallerIdentity) -> List[MonthlyProgress]:
    """Average paper percentage per calendar month, oldest first. Premium only."""
    require_premium(db, caller)
    return monthly_averages(load_paper_scores(db, caller.user_id))


def weekly_summary(db: Session, user_id: int, today: date) -> WeeklySummary:
    """The last seven days for one user, as sent in the weekly summary mail."""
    summary = summarise_week(
        load_paper_scores(db, user_id),
        aggregate_topics(load_response_facts(db, user_id)),
        since=today - timedelta(days=7),
    )
    row = db.get(UserStreak, user_id)
    if row is not None:
        summary.current_streak = standing_streak(StreakState(row.current_streak, row.longest_streak, row.last_activity_date), today)
    return summary
