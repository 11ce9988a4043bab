import pytest

from paperstats.core.errors import ValidationError
from paperstats.models.orm import UserPoints
from paperstats.services.points import add_points, get_points, level_for


@pytest.mark.parametrize("experience,level", [(0, 1), (999, 1), (1000, 2), (2500, 3)])
def test_level_for(experience, level):
    assert level_for(experience) == level


def test_add_points_creates_ledger(db, make_user):
    user = make_user()
    update = add_points(db, user.id, 5)
    db.commit()
    assert (update.total_points, update.experience, update.level, update.leveled_up) == (5, 5, 1, False)
    assert get_points(db, user.id).total_points == 5


def test_level_up_scenario_c(db, make_user):
    user = make_user()
    db.add(UserPoints(user_id=user.id, total_points=999, experience=999, level=1))
    db.commit()

    update = add_points(db, user.id, 1)
    db.commit()

    assert update.experience == 1000
    assert update.level == 2
    assert update.leveled_up is True


def test_points_accumulate(db, make_user):
    user = make_user()
    for _ in range(3):
        add_points(db, user.id, 55)
    db.commit()
    row = get_points(db, user.id)
    assert row.total_points == row.experience == 165


@pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
def test_invalid_amounts(db, make_user, amount):
    user = make_user()
    with pytest.raises(ValidationError) as exc:
        add_points(db, user.id, amount)
    assert exc.value.field == "amount"
