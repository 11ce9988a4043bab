"""
Records a user's marks for one paper.

A user holds at most one submission per paper. Submitting again replaces the
earlier responses and refreshes the submission date; only a first submission
counts against the plan's paper quota.
"""
import logging
from dataclasses import dataclass
from typing import Mapping

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.errors import NotFoundError, PlanLimitError, ValidationError
from paperstats.models.orm import Paper, Response, Submission, User, UserPlan, utcnow
from paperstats.services.aggregation import load_paper_scores
from paperstats.services.plans import load_plan

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    submission_id: int
    paper_id: int
    total_obtained: int
    total_marks: int
    is_new: bool


def _validate_marks(paper: Paper, marks: Mapping[int, int]) -> None:
    if not marks:
        raise ValidationError("At least one question mark is required", field="marks")
    questions = {q.id: q for q in paper.questions}
    for question_id, value in marks.items():
        field = f"marks.{question_id}"
        question = questions.get(question_id)
        if question is None:
            raise ValidationError(f"Question {question_id} is not part of paper {paper.id}", field=field)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("Marks must be an integer", field=field)
        if value < 0 or value > question.marks_available:
            raise ValidationError(f"Marks must be between 0 and {question.marks_available}", field=field)


def _consume_quota(db: Session, user_id: int) -> None:
    load_plan(db, user_id)
    result = db.execute(
        update(UserPlan)
        .where(UserPlan.user_id == user_id, UserPlan.papers_submitted < UserPlan.max_papers)
        .values(papers_submitted=UserPlan.papers_submitted + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PlanLimitError("Paper limit reached for your plan, upgrade to submit more papers")


def record_submission(db: Session, caller: CallerIdentity, paper_id: int, marks: Mapping[int, int]) -> SubmissionResult:
    user_id = caller.user_id
    if db.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    paper = db.get(Paper, paper_id)
    if paper is None:
        raise NotFoundError(f"Paper {paper_id} not found")
    _validate_marks(paper, marks)

    submission = db.scalar(select(Submission).where(Submission.user_id == user_id, Submission.paper_id == paper_id))
    is_new = False
    if submission is None:
        try:
            with db.begin_nested():
                submission = Submission(user_id=user_id, paper_id=paper_id, total_obtained=0)
                db.add(submission)
            is_new = True
        except IntegrityError:
            submission = db.scalar(select(Submission).where(Submission.user_id == user_id, Submission.paper_id == paper_id))

    try:
        if is_new:
            _consume_quota(db, user_id)
        else:
            submission.responses.clear()
            db.flush()

        total = 0
        for question_id, value in marks.items():
            submission.responses.append(Response(question_id=question_id, marks_obtained=value))
            total += value
        submission.total_obtained = total
        submission.submission_date = utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    total_marks = sum(q.marks_available for q in paper.questions) if paper.questions else paper.total_marks
    logger.info(
        "User %s %s paper %s: %d/%d",
        user_id, "submitted" if is_new else "resubmitted", paper_id, total, total_marks,
    )
    return SubmissionResult(
        submission_id=submission.id, paper_id=paper_id, total_obtained=total,
        total_marks=total_marks, is_new=is_new,
    )


def previous_score(db: Session, user_id: int, exclude_paper_id: int) -> float:
    """Percentage of the user's most recent submission for another paper; 0 if none."""
    for score in load_paper_scores(db, user_id):
        if score.paper_id != exclude_paper_id:
            return score.percentage
    return 0.0
