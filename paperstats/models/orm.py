import enum
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index,
    Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paperstats.core.database import Base

# BIGINT primary keys do not autoincrement on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanType(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"


class MistakeType(str, enum.Enum):
    DIDNT_UNDERSTAND = "didnt_understand"
    MISREAD_QUESTION = "misread_question"
    ALGEBRA_ERROR = "algebra_error"
    FORGOT_FORMULA = "forgot_formula"
    TIME_PRESSURE = "time_pressure"


class NotificationStatus(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


# ========== Identity ==========

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    leaderboard_opt_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ========== Reference data ==========

class Paper(Base):
    __tablename__ = "papers"
    __table_args__ = (
        UniqueConstraint("exam_board", "year", "paper_number", name="uq_paper"),
        CheckConstraint("total_marks >= 0", name="ck_paper_total_marks"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    exam_board: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    paper_number: Mapped[int] = mapped_column(Integer, nullable=False)
    total_marks: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    questions: Mapped[List["Question"]] = relationship(back_populates="paper", order_by="Question.question_number")


class Question(Base):
    __tablename__ = "exam_questions"
    __table_args__ = (
        UniqueConstraint("paper_id", "question_number", name="uq_exam_question"),
        CheckConstraint("marks_available >= 0", name="ck_question_marks_available"),
        Index("idx_eq_paper", "paper_id"),
        Index("idx_eq_topic", "topic"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    paper_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    question_number: Mapped[int] = mapped_column(Integer, nullable=False)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_topic: Mapped[Optional[str]] = mapped_column(String(100))
    marks_available: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    paper: Mapped["Paper"] = relationship(back_populates="questions")


# ========== Submissions ==========

class Submission(Base):
    __tablename__ = "user_papers"
    __table_args__ = (
        UniqueConstraint("user_id", "paper_id", name="uq_user_paper"),
        CheckConstraint("total_obtained >= 0", name="ck_user_paper_total"),
        Index("idx_up_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    paper_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("papers.id", ondelete="CASCADE"), nullable=False)
    total_obtained: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    submission_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    paper: Mapped["Paper"] = relationship()
    responses: Mapped[List["Response"]] = relationship(back_populates="submission", cascade="all, delete-orphan")


class Response(Base):
    __tablename__ = "question_responses"
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_question_response"),
        CheckConstraint("marks_obtained >= 0", name="ck_response_marks"),
        Index("idx_qr_submission", "submission_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    submission_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("user_papers.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("exam_questions.id", ondelete="CASCADE"), nullable=False)
    marks_obtained: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    submission: Mapped["Submission"] = relationship(back_populates="responses")
    question: Mapped["Question"] = relationship()


# ========== Gamification ==========

class UserStreak(Base):
    __tablename__ = "user_streaks"
    __table_args__ = (
        CheckConstraint("current_streak >= 0", name="ck_streak_current"),
        CheckConstraint("current_streak <= longest_streak", name="ck_streak_longest"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UserPoints(Base):
    __tablename__ = "user_points"
    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_points_total"),
        CheckConstraint("experience >= 0", name="ck_points_experience"),
        Index("idx_points_total", "total_points"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    experience: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class UserBadge(Base):
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),
        Index("idx_ub_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[str] = mapped_column(String(50), nullable=False)
    badge_name: Mapped[str] = mapped_column(String(100), nullable=False)
    badge_description: Mapped[Optional[str]] = mapped_column(Text)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserPlan(Base):
    __tablename__ = "user_plans"
    __table_args__ = (
        CheckConstraint("papers_submitted >= 0", name="ck_plan_papers"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    plan_type: Mapped[str] = mapped_column(String(20), default=PlanType.FREE.value, nullable=False)
    max_papers: Mapped[int] = mapped_column(Integer, nullable=False)
    papers_submitted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MistakeLog(Base):
    __tablename__ = "mistake_log"
    __table_args__ = (
        Index("idx_ml_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("exam_questions.id", ondelete="CASCADE"), nullable=False)
    submission_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("user_papers.id", ondelete="CASCADE"), nullable=False)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    mistake_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EmailNotification(Base):
    __tablename__ = "email_notifications"
    __table_args__ = (
        Index("idx_en_user", "user_id"),
        Index("idx_en_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(30), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(10), default=NotificationStatus.QUEUED.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    streak_reminders: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    weekly_summaries: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    badge_celebrations: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
