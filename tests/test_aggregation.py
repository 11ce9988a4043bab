from datetime import date, datetime

import pytest

from conftest import caller_for
from paperstats.core.errors import PlanLimitError
from paperstats.models.orm import Submission, UserStreak
from paperstats.services import plans
from paperstats.services.aggregation import (
    PaperScore, ResponseFact, accuracy, aggregate_sub_topics, aggregate_topics,
    compute_stats, monthly_averages, monthly_progress, overall_score, round_half_up,
    summarise_week, weekly_summary,
)
from paperstats.services.submissions import record_submission


def _fact(topic, obtained, available, sub_topic=None, qid=1):
    return ResponseFact(question_id=qid, topic=topic, sub_topic=sub_topic, marks_obtained=obtained, marks_available=available)


def _score(obtained, total, when=datetime(2024, 1, 10), paper_id=1):
    return PaperScore(
        submission_id=paper_id, paper_id=paper_id, exam_board="AQA", year=2023, paper_number=1,
        total_obtained=obtained, total_marks=total, submission_date=when,
    )


def test_accuracy_zero_available():
    assert accuracy(0, 0) == 0.0
    assert accuracy(5, 0) == 0.0
    assert accuracy(3, 4) == 75.0


def test_topics_are_mark_weighted():
    topics = aggregate_topics([
        _fact("Algebra", 8, 10),
        _fact("Calculus", 6, 10),
        _fact("Algebra", 1, 10),
    ])
    assert [t.topic for t in topics] == ["Calculus", "Algebra"]
    algebra = topics[1]
    assert (algebra.marks_obtained, algebra.marks_available) == (9, 20)
    assert algebra.accuracy == 45.0


def test_topic_accuracy_bounds():
    topics = aggregate_topics([_fact("A", 0, 0), _fact("B", 4, 4), _fact("C", 0, 3)])
    for t in topics:
        assert 0 <= t.accuracy <= 100
    assert {t.topic: t.accuracy for t in topics}["A"] == 0.0


def test_sub_topics_ranked_by_marks_lost():
    weak = aggregate_sub_topics([
        _fact("Algebra", 0, 1, sub_topic="surds"),        # 0% but only 1 mark lost
        _fact("Algebra", 10, 20, sub_topic="quadratics"),  # 50%, 10 marks lost
        _fact("Algebra", 5, 5),                           # no sub-topic
    ])
    assert [s.sub_topic for s in weak] == ["quadratics", "surds"]
    assert weak[0].marks_lost == 10
    assert weak[1].accuracy == 0.0


def test_round_half_up():
    assert [round_half_up(v) for v in (62.5, 89.5, 99.5, 62.4, 0.0)] == [63, 90, 100, 62, 0]


def test_overall_score_is_paper_weighted():
    # 50/100 and 10/10: mark weighted would be 60/110
    assert overall_score([_score(50, 100), _score(10, 10)]) == 75.0
    assert overall_score([]) == 0.0


def test_monthly_averages():
    months = monthly_averages([
        _score(50, 100, datetime(2024, 2, 3)),
        _score(70, 100, datetime(2024, 1, 5)),
        _score(90, 100, datetime(2024, 1, 20)),
    ])
    assert [m.month.month for m in months] == [1, 2]
    assert months[0].avg_score == 80.0
    assert months[0].paper_count == 2


def test_compute_stats_scenario(db, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", "linear", 10), ("Calculus", "integration", 10)])
    q1, q2 = paper.questions
    record_submission(db, caller_for(user), paper.id, {q1.id: 8, q2.id: 6})

    stats = compute_stats(db, caller_for(user))
    assert stats.paper_count == 1
    assert stats.overall_score == 70.0
    assert [(t.topic, t.accuracy) for t in stats.topics] == [("Algebra", 80.0), ("Calculus", 60.0)]
    assert [s.sub_topic for s in stats.sub_topic_weakness] == ["integration", "linear"]


def test_compute_stats_only_counts_own_submissions(db, make_user, make_paper):
    alice, bob = make_user(), make_user()
    paper = make_paper([("Algebra", None, 10)])
    q = paper.questions[0]
    record_submission(db, caller_for(alice), paper.id, {q.id: 10})
    record_submission(db, caller_for(bob), paper.id, {q.id: 2})

    stats = compute_stats(db, caller_for(bob))
    assert stats.paper_count == 1
    assert stats.topics[0].accuracy == 20.0


def test_compute_stats_empty(db, make_user):
    stats = compute_stats(db, caller_for(make_user()))
    assert stats.overall_score == 0.0
    assert stats.paper_count == 0
    assert stats.topics == []


def test_monthly_progress_requires_premium(db, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 10)])
    record_submission(db, caller_for(user), paper.id, {paper.questions[0].id: 5})

    with pytest.raises(PlanLimitError):
        monthly_progress(db, caller_for(user))

    plans.upgrade_plan(db, caller_for(user), "premium")
    months = monthly_progress(db, caller_for(user))
    assert len(months) == 1
    assert months[0].avg_score == 50.0


def test_summarise_week():
    papers = [
        _score(14, 20, datetime(2024, 4, 29, 18), paper_id=2),
        _score(3, 10, datetime(2024, 4, 24), paper_id=3),
        _score(9, 10, datetime(2024, 4, 1), paper_id=1),
    ]
    topics = aggregate_topics([_fact("A", 9, 10), _fact("B", 5, 10), _fact("C", 7, 10), _fact("D", 1, 10)])
    summary = summarise_week(papers, topics, since=date(2024, 4, 24))

    assert summary.papers_submitted == 2
    assert summary.marks_obtained == 17
    assert summary.average_score == 50.0
    assert summary.top_topics == ["A", "C", "B"]


def test_weekly_summary(db, make_user, make_paper):
    user = make_user()
    caller = caller_for(user)
    old = make_paper([("Algebra", None, 10)])
    recent = make_paper([("Calculus", None, 10), ("Vectors", None, 10)])
    record_submission(db, caller, old.id, {old.questions[0].id: 2})
    q1, q2 = recent.questions
    record_submission(db, caller, recent.id, {q1.id: 9, q2.id: 5})
    db.query(Submission).filter_by(paper_id=old.id).update({"submission_date": datetime(2024, 4, 1)})
    db.query(Submission).filter_by(paper_id=recent.id).update({"submission_date": datetime(2024, 4, 29, 18)})
    db.add(UserStreak(user_id=user.id, current_streak=4, longest_streak=6, last_activity_date=date(2024, 4, 29)))
    db.commit()

    summary = weekly_summary(db, user.id, date(2024, 4, 30))
    assert summary.papers_submitted == 1
    assert summary.marks_obtained == 14
    assert summary.average_score == 70.0
    assert summary.top_topics == ["Calculus", "Vectors", "Algebra"]
    assert summary.current_streak == 4

    # two days without activity: the streak no longer stands
    assert weekly_summary(db, user.id, date(2024, 5, 1)).current_streak == 0


def test_weekly_summary_without_activity(db, make_user):
    summary = weekly_summary(db, make_user().id, date(2024, 5, 1))
    assert (summary.papers_submitted, summary.average_score, summary.top_topics, summary.current_streak) == (0, 0.0, [], 0)
