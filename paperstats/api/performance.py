from datetime import datetime
from typing import Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity, get_current_user
from paperstats.core.database import get_db
from paperstats.services import aggregation, projection

router = APIRouter()


class TopicOut(BaseModel):
    topic: str
    accuracy: float
    marks_obtained: int
    marks_available: int


class WeaknessOut(BaseModel):
    question_type: str
    marks_lost: int
    accuracy: float


class StatsOut(BaseModel):
    overallScore: int
    paperCount: int
    topics: List[TopicOut]
    questionTypeWeakness: List[WeaknessOut]


class PaperScoreOut(BaseModel):
    submission_id: int
    paper_id: int
    exam_board: str
    year: int
    paper_number: int
    total_obtained: int
    total_marks: int
    percentage: float
    submission_date: datetime


class MonthOut(BaseModel):
    month: str
    avg_score: float
    paper_count: int


class ProjectionIn(BaseModel):
    improvements: Dict[str, float] = Field(default_factory=dict)


class TopicProjectionOut(BaseModel):
    topic: str
    currentMarks: float
    projectedMarks: float
    marksAvailable: int


class ProjectionOut(BaseModel):
    currentOverall: float
    currentGrade: str
    projectedOverall: float
    projectedGrade: str
    perTopic: List[TopicProjectionOut]


@router.get("/stats", response_model=StatsOut)
def get_stats(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    stats = aggregation.compute_stats(db, caller)
    return StatsOut(
        overallScore=aggregation.round_half_up(stats.overall_score),
        paperCount=stats.paper_count,
        topics=[
            TopicOut(topic=t.topic, accuracy=round(t.accuracy, 1), marks_obtained=t.marks_obtained, marks_available=t.marks_available)
            for t in stats.topics
        ],
        questionTypeWeakness=[
            WeaknessOut(question_type=s.sub_topic, marks_lost=s.marks_lost, accuracy=round(s.accuracy, 1))
            for s in stats.sub_topic_weakness
        ],
    )


@router.get("/papers", response_model=List[PaperScoreOut])
def get_paper_scores(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        PaperScoreOut(
            submission_id=p.submission_id, paper_id=p.paper_id, exam_board=p.exam_board, year=p.year,
            paper_number=p.paper_number, total_obtained=p.total_obtained, total_marks=p.total_marks,
            percentage=round(p.percentage, 1), submission_date=p.submission_date,
        )
        for p in aggregation.load_paper_scores(db, caller.user_id)
    ]


@router.get("/progress", response_model=List[MonthOut])
def get_progress(caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        MonthOut(month=m.month.strftime("%Y-%m"), avg_score=round(m.avg_score, 1), paper_count=m.paper_count)
        for m in aggregation.monthly_progress(db, caller)
    ]


@router.post("/projection", response_model=ProjectionOut)
def project_grade(payload: ProjectionIn, caller: CallerIdentity = Depends(get_current_user), db: Session = Depends(get_db)):
    topics = aggregation.compute_stats(db, caller).topics
    current = projection.project(topics, {})
    projected = projection.project(topics, payload.improvements)
    return ProjectionOut(
        currentOverall=round(current.projected_overall, 1),
        currentGrade=projection.grade_for(current.projected_overall),
        projectedOverall=round(projected.projected_overall, 1),
        projectedGrade=projection.grade_for(projected.projected_overall),
        perTopic=[
            TopicProjectionOut(
                topic=t.topic, currentMarks=round(t.current_marks, 2),
                projectedMarks=round(t.projected_marks, 2), marksAvailable=t.marks_available,
            )
            for t in projected.per_topic
        ],
    )
