from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity, get_current_user
from paperstats.core.database import get_db
from paperstats.core.errors import NotFoundError
from paperstats.models.orm import Paper, Question
from paperstats.services.notifications import Notifier, get_notifier
from paperstats.services.pipeline import process_submission

router = APIRouter()


class PaperOut(BaseModel):
    id: int
    exam_board: str
    year: int
    paper_number: int
    total_marks: int


class QuestionOut(BaseModel):
    id: int
    question_number: int
    topic: str
    sub_topic: Optional[str] = None
    marks_available: int


class SubmitIn(BaseModel):
    marks: Dict[int, int]


class StreakOut(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date] = None
    pointsAwarded: int
    alreadyCounted: bool


class SubmitOut(BaseModel):
    submissionId: int
    totalObtained: int
    totalMarks: int
    overallScore: int
    paperCount: int
    badgesAwarded: List[str]
    streak: StreakOut


@router.get("", response_model=List[PaperOut])
def list_papers(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    papers = db.scalars(select(Paper).order_by(Paper.year.desc(), Paper.paper_number.asc(), Paper.id.asc())).all()
    return [PaperOut(id=p.id, exam_board=p.exam_board, year=p.year, paper_number=p.paper_number, total_marks=p.total_marks) for p in papers]


@router.get("/{paper_id}/questions", response_model=List[QuestionOut])
def list_questions(paper_id: int, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    if db.get(Paper, paper_id) is None:
        raise NotFoundError(f"Paper {paper_id} not found")
    questions = db.scalars(select(Question).where(Question.paper_id == paper_id).order_by(Question.question_number)).all()
    return [
        QuestionOut(id=q.id, question_number=q.question_number, topic=q.topic, sub_topic=q.sub_topic, marks_available=q.marks_available)
        for q in questions
    ]


class TopicsOut(BaseModel):
    exam_board: str
    topics: List[str]


@router.get("/topics/{exam_board}", response_model=TopicsOut)
def list_topics(exam_board: str, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    topics = db.scalars(
        select(Question.topic).join(Paper, Question.paper_id == Paper.id)
        .where(Paper.exam_board == exam_board)
        .distinct()
        .order_by(Question.topic)
    ).all()
    return TopicsOut(exam_board=exam_board, topics=list(topics))


@router.post("/{paper_id}/submit", response_model=SubmitOut)
def submit_paper(
    paper_id: int,
    payload: SubmitIn,
    caller: CallerIdentity = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = process_submission(db, caller, paper_id, payload.marks, notifier=notifier)
    streak = outcome.streak
    return SubmitOut(
        submissionId=outcome.submission.submission_id,
        totalObtained=outcome.submission.total_obtained,
        totalMarks=outcome.submission.total_marks,
        overallScore=outcome.overall_score,
        paperCount=outcome.paper_count,
        badgesAwarded=outcome.badges_awarded,
        streak=StreakOut(
            current_streak=streak.current_streak, longest_streak=streak.longest_streak,
            last_activity_date=streak.last_activity_date, pointsAwarded=streak.points_awarded,
            alreadyCounted=streak.already_counted,
        ),
    )
