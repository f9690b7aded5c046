import math

import pytest

from timetable_engine.analysis import capacity_bound, teacher_difficulties, unassigned_requirements
from timetable_engine.models import DomainModel
from timetable_engine.scheduler import generate

from conftest import make_teacher, required


def test_difficulty_shares_hours_between_teachers(feasible_school) -> None:
    domain, settings = feasible_school
    by_id = {d.teacher_id: d for d in teacher_difficulties(domain, settings)}
    # math: 5 + 5 lessons in grade 1, 5 in grade 2, split over two teachers
    assert by_id["t-math1"].load_share == pytest.approx(7.5)
    assert by_id["t-math1"].available_slots == 14
    assert by_id["t-math1"].difficulty == pytest.approx(7.5 / 14)
    assert by_id["t-sci"].difficulty == pytest.approx(12 / 15)


def test_difficulty_is_sorted_hardest_first(feasible_school) -> None:
    domain, settings = feasible_school
    scores = [d.difficulty for d in teacher_difficulties(domain, settings)]
    assert scores == sorted(scores, reverse=True)


def test_teacher_without_free_slot_is_infinitely_hard(scenario_a) -> None:
    domain, settings = scenario_a
    blocked = make_teacher(
        "t2", ["math"], restrictions=[required(d, 1, 2) for d in settings.days]
    )
    domain = DomainModel(domain.teachers + (blocked,), domain.subjects, domain.classrooms)
    first = teacher_difficulties(domain, settings)[0]
    assert first.teacher_id == "t2"
    assert math.isinf(first.difficulty)
    assert first.to_dict()["difficulty"] is None


def test_unassigned_requirements_after_infeasible_run(scenario_b) -> None:
    domain, settings = scenario_b
    tt = generate(domain, settings).timetable
    missing = unassigned_requirements(tt, settings, domain)
    assert [(m.section, m.subject_id, m.missing_hours) for m in missing] == [("B", "math", 5)]
    assert missing[0].reasons == []


def test_capacity_bound_matches_teacher_limit(scenario_b) -> None:
    domain, settings = scenario_b
    bound = capacity_bound(domain, settings)
    assert bound.required_lessons == 10
    assert bound.max_placeable == 5
    assert bound.fully_schedulable is False


def test_capacity_bound_on_feasible_data(full_week) -> None:
    domain, settings = full_week
    bound = capacity_bound(domain, settings)
    assert bound.proven
    assert bound.max_placeable == bound.required_lessons == 10
    assert bound.to_dict()["per_class"] == {"1-A": 10}
