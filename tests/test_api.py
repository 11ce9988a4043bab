from conftest import auth_header
from paperstats.core.auth import create_token


def _submit(client, user, paper, marks):
    return client.post(
        f"/v1/papers/{paper.id}/submit",
        headers=auth_header(user),
        json={"marks": {str(qid): m for qid, m in marks.items()}},
    )


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_requires_identity(client):
    r = client.get("/v1/performance/stats")
    assert r.status_code == 401
    assert r.json()["error"]["type"] == "unauthorized"

    r = client.get("/v1/gamification/points", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401

    expired = create_token(1, ttl_minutes=-5)
    r = client.get("/v1/gamification/points", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Token has expired"


def test_submit_then_stats_scenario_a(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", "linear", 10), ("Calculus", "integration", 10)])
    q1, q2 = paper.questions

    r = _submit(client, user, paper, {q1.id: 8, q2.id: 6})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["totalObtained"] == 14
    assert body["badgesAwarded"] == ["first_paper"]
    assert body["streak"]["current_streak"] == 1
    assert body["streak"]["pointsAwarded"] == 5

    stats = client.get("/v1/performance/stats", headers=auth_header(user)).json()
    assert stats["overallScore"] == 70
    assert stats["paperCount"] == 1
    assert [(t["topic"], t["accuracy"]) for t in stats["topics"]] == [("Algebra", 80.0), ("Calculus", 60.0)]
    assert stats["questionTypeWeakness"][0] == {"question_type": "integration", "marks_lost": 4, "accuracy": 60.0}

    papers = client.get("/v1/performance/papers", headers=auth_header(user)).json()
    assert papers[0]["percentage"] == 70.0

    points = client.get("/v1/gamification/points", headers=auth_header(user)).json()
    assert points == {"total_points": 5, "level": 1, "experience": 5}

    earned = client.get("/v1/gamification/badges", headers=auth_header(user)).json()
    assert [b["badge_id"] for b in earned] == ["first_paper"]


def test_submit_validation_error_names_field(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 10)])
    q = paper.questions[0]

    r = _submit(client, user, paper, {q.id: 11})
    assert r.status_code == 422
    assert r.json()["error"]["field"] == f"marks.{q.id}"

    r = client.post(f"/v1/papers/{paper.id}/submit", headers=auth_header(user), json={})
    assert r.status_code == 422
    assert r.json()["error"]["field"] == "marks"


def test_unknown_paper(client, make_user):
    r = client.get("/v1/papers/999/questions", headers=auth_header(make_user()))
    assert r.status_code == 404
    assert r.json()["error"]["type"] == "not_found"


def test_papers_and_questions(client, make_user, make_paper):
    user = make_user()
    older = make_paper([("Algebra", None, 4)], year=2021)
    newer = make_paper([("Algebra", None, 3), ("Vectors", "dot product", 7)], year=2023)

    listed = client.get("/v1/papers", headers=auth_header(user)).json()
    assert [p["id"] for p in listed] == [newer.id, older.id]

    questions = client.get(f"/v1/papers/{newer.id}/questions", headers=auth_header(user)).json()
    assert [(q["question_number"], q["topic"]) for q in questions] == [(1, "Algebra"), (2, "Vectors")]


def test_streak_endpoints_are_idempotent_per_day(client, make_user):
    user = make_user()
    assert client.get("/v1/gamification/streaks", headers=auth_header(user)).json()["current_streak"] == 0

    first = client.post("/v1/gamification/daily-checkin", headers=auth_header(user)).json()
    assert first["pointsAwarded"] == 5 and not first["alreadyCounted"]

    again = client.post("/v1/gamification/streaks/update", headers=auth_header(user)).json()
    assert again["current_streak"] == 1
    assert again["longest_streak"] == 1

    second = client.post("/v1/gamification/daily-checkin", headers=auth_header(user)).json()
    assert second["alreadyCounted"] and second["pointsAwarded"] == 0


def test_badge_award_endpoint(client, make_user):
    user = make_user()
    r = client.post("/v1/gamification/badges/award", headers=auth_header(user), json={"badgeId": "grade_a"})
    assert r.json()["success"] is True
    assert r.json()["badge"]["badge_name"] == "A Grade Achievement"

    r = client.post("/v1/gamification/badges/award", headers=auth_header(user), json={"badgeId": "grade_a"})
    assert r.status_code == 200
    assert r.json() == {"success": False, "badge": None}

    r = client.post("/v1/gamification/badges/award", headers=auth_header(user), json={"badgeId": "nope"})
    assert r.status_code == 422


def test_leaderboard_toggle(client, make_user, make_paper):
    user = make_user(username="ada")
    paper = make_paper([("Algebra", None, 10)])
    _submit(client, user, paper, {paper.questions[0].id: 5})

    assert client.get("/v1/gamification/leaderboard", headers=auth_header(user)).json() == []

    r = client.post("/v1/gamification/leaderboard/toggle", headers=auth_header(user), json={"isPublic": True})
    assert r.json() == {"success": True, "isPublic": True}
    board = client.get("/v1/gamification/leaderboard", headers=auth_header(user)).json()
    assert board == [{"rank": 1, "username": "ada", "total_points": 5, "level": 1}]


def test_plan_gate_and_upgrade(client, make_user):
    user = make_user()
    assert client.get("/v1/gamification/plan", headers=auth_header(user)).json() == {
        "plan_type": "free", "max_papers": 3, "papers_submitted": 0,
    }

    r = client.get("/v1/performance/progress", headers=auth_header(user))
    assert r.status_code == 403
    assert r.json()["error"]["type"] == "plan_limit"

    r = client.post("/v1/gamification/plan/upgrade", headers=auth_header(user), json={"planType": "pro"})
    assert r.json()["max_papers"] == 999
    assert client.get("/v1/performance/progress", headers=auth_header(user)).json() == []

    r = client.post("/v1/gamification/plan/upgrade", headers=auth_header(user), json={"planType": "gold"})
    assert r.status_code == 422
    assert r.json()["error"]["field"] == "planType"


def test_projection_endpoint(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 10), ("Calculus", None, 10)])
    q1, q2 = paper.questions
    _submit(client, user, paper, {q1.id: 8, q2.id: 6})

    r = client.post("/v1/performance/projection", headers=auth_header(user), json={"improvements": {"Calculus": 20}})
    body = r.json()
    assert body["currentOverall"] == 70.0
    assert body["currentGrade"] == "B"
    assert body["projectedOverall"] == 80.0
    assert body["projectedGrade"] == "A"

    r = client.post("/v1/performance/projection", headers=auth_header(user), json={"improvements": {"Calculus": 25}})
    assert r.status_code == 422
    assert r.json()["error"]["field"] == "improvements.Calculus"


def test_mistake_endpoints(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 10)])
    q = paper.questions[0]
    submission_id = _submit(client, user, paper, {q.id: 3}).json()["submissionId"]

    r = client.post("/v1/gamification/mistakes", headers=auth_header(user), json={
        "questionId": q.id, "submissionId": submission_id, "topic": "Algebra", "mistakeType": "forgot_formula",
    })
    assert r.status_code == 201
    analysis = client.get("/v1/gamification/mistakes/analysis", headers=auth_header(user)).json()
    assert analysis["total"] == 1
    assert analysis["byType"] == [{"mistake_type": "forgot_formula", "count": 1, "percentage": 100.0}]


def test_topics_for_exam_board(client, make_user, make_paper):
    user = make_user()
    make_paper([("Vectors", None, 4), ("Algebra", None, 3)], exam_board="Edexcel")
    make_paper([("Algebra", None, 5)], exam_board="Edexcel")
    make_paper([("Mechanics", None, 5)], exam_board="OCR")

    r = client.get("/v1/papers/topics/Edexcel", headers=auth_header(user))
    assert r.json() == {"exam_board": "Edexcel", "topics": ["Algebra", "Vectors"]}


def test_notification_preferences_and_history(client, make_user):
    user = make_user()
    r = client.get("/v1/notifications/preferences", headers=auth_header(user))
    assert r.json() == {"streakReminders": True, "weeklySummaries": True, "badgeCelebrations": True}

    r = client.put("/v1/notifications/preferences", headers=auth_header(user), json={"weeklySummaries": False})
    assert r.json() == {"streakReminders": True, "weeklySummaries": False, "badgeCelebrations": True}

    client.post("/v1/gamification/badges/award", headers=auth_header(user), json={"badgeId": "first_paper"})
    body = client.get("/v1/notifications/history", headers=auth_header(user)).json()
    assert body["total"] == 1
    assert body["notifications"][0]["notification_type"] == "badge_celebration"
    assert body["notifications"][0]["status"] == "queued"


def test_stats_overall_rounds_halves_up(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 40)])
    body = _submit(client, user, paper, {paper.questions[0].id: 25}).json()
    assert body["overallScore"] == 63

    stats = client.get("/v1/performance/stats", headers=auth_header(user)).json()
    assert stats["overallScore"] == 63


def test_weekly_summary_preview(client, make_user, make_paper):
    user = make_user()
    paper = make_paper([("Algebra", None, 10), ("Calculus", None, 10)])
    q1, q2 = paper.questions
    _submit(client, user, paper, {q1.id: 8, q2.id: 6})

    body = client.get("/v1/notifications/weekly-summary", headers=auth_header(user)).json()
    assert body == {
        "papersSubmitted": 1, "marksObtained": 14, "averageScore": 70.0,
        "topTopics": ["Algebra", "Calculus"], "currentStreak": 1,
    }
