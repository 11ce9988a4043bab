import pytest

from conftest import caller_for
from paperstats.core.errors import NotFoundError, ValidationError
from paperstats.services.mistakes import log_mistake, mistake_analysis
from paperstats.services.submissions import record_submission


@pytest.fixture
def submitted(db, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 5), ("Calculus", None, 5)])
    result = record_submission(db, caller_for(user), paper.id, {q.id: 2 for q in paper.questions})
    return user, paper, result.submission_id


def test_log_and_analyse(db, submitted):
    user, paper, submission_id = submitted
    q1, q2 = paper.questions
    caller = caller_for(user)
    log_mistake(db, caller, q1.id, submission_id, "Algebra", "algebra_error")
    log_mistake(db, caller, q1.id, submission_id, "Algebra", "algebra_error", description="sign slip")
    log_mistake(db, caller, q2.id, submission_id, "Calculus", "time_pressure")

    analysis = mistake_analysis(db, caller)
    assert analysis.total == 3
    assert [(m.mistake_type, m.count, m.percentage) for m in analysis.by_type] == [
        ("algebra_error", 2, 66.7),
        ("time_pressure", 1, 33.3),
    ]
    assert analysis.by_topic == [{"topic": "Algebra", "count": 2}, {"topic": "Calculus", "count": 1}]


def test_analysis_empty(db, make_user):
    analysis = mistake_analysis(db, caller_for(make_user()))
    assert analysis.total == 0
    assert analysis.by_type == []


def test_unknown_mistake_type(db, submitted):
    user, paper, submission_id = submitted
    with pytest.raises(ValidationError) as exc:
        log_mistake(db, caller_for(user), paper.questions[0].id, submission_id, "Algebra", "guessed")
    assert exc.value.field == "mistakeType"


def test_cannot_log_against_someone_elses_submission(db, submitted, make_user):
    _, paper, submission_id = submitted
    intruder = make_user()
    with pytest.raises(NotFoundError):
        log_mistake(db, caller_for(intruder), paper.questions[0].id, submission_id, "Algebra", "misread_question")
