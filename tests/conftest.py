from __future__ import annotations

from typing import Dict, Iterable, List

import pytest

from timetable_engine.models import (
    AssignmentRestriction,
    Classroom,
    DomainModel,
    RestrictionLevel,
    SchoolSettings,
    SchoolSnapshot,
    Subject,
    Teacher,
)


def make_teacher(
    tid: str,
    subjects: Iterable[str],
    grades: Iterable[int] = (1,),
    restrictions: Iterable[AssignmentRestriction] = (),
) -> Teacher:
    return Teacher(
        id=tid,
        name=tid.title(),
        subject_ids=frozenset(subjects),
        grades=frozenset(grades),
        restrictions=tuple(restrictions),
    )


def make_subject(
    sid: str,
    hours: Dict[int, int],
    room_type: str | None = None,
) -> Subject:
    return Subject(
        id=sid,
        name=sid.title(),
        grades=frozenset(hours),
        weekly_hours=dict(hours),
        requires_special_classroom=room_type is not None,
        classroom_type=room_type,
    )


def required(day: str, *periods: int) -> AssignmentRestriction:
    return AssignmentRestriction(day, frozenset(periods), RestrictionLevel.REQUIRED, "busy")


def preferred(day: str, *periods: int) -> AssignmentRestriction:
    return AssignmentRestriction(day, frozenset(periods), RestrictionLevel.PREFERRED, "rather not")


def make_settings(sections: Dict[int, List[str]] | None = None, periods: int = 2, **kw) -> SchoolSettings:
    return SchoolSettings(sections=sections or {1: ["A"]}, periods_per_day=periods, **kw)


@pytest.fixture
def scenario_a() -> tuple[DomainModel, SchoolSettings]:
    """One class, 2 periods x Mon-Fri, one 2-hour subject with one teacher and one room."""
    domain = DomainModel(
        teachers=(make_teacher("t1", ["math"]),),
        subjects=(make_subject("math", {1: 2}),),
        classrooms=(Classroom("r1", "Room 1", "normal"),),
    )
    return domain, make_settings()


@pytest.fixture
def scenario_b() -> tuple[DomainModel, SchoolSettings]:
    """Two classes that both need every period of the only teacher."""
    domain = DomainModel(
        teachers=(make_teacher("t1", ["math"]),),
        subjects=(make_subject("math", {1: 5}),),
        classrooms=(Classroom("r1", "Room 1", "normal", count=2),),
    )
    return domain, make_settings({1: ["A", "B"]}, periods=1)


@pytest.fixture
def feasible_school() -> tuple[DomainModel, SchoolSettings]:
    """Two grades, every slot has to be filled, shared teachers and a one-unit lab."""
    domain = DomainModel(
        teachers=(
            make_teacher("t-math1", ["math"], [1], [required("Monday", 1)]),
            make_teacher("t-math2", ["math"], [1, 2]),
            make_teacher("t-lang1", ["lang"], [1]),
            make_teacher("t-lang2", ["lang"], [1]),
            make_teacher("t-lang3", ["lang"], [2]),
            make_teacher("t-sci", ["sci"], [1, 2], [preferred("Friday", 3)]),
        ),
        subjects=(
            make_subject("math", {1: 5, 2: 5}),
            make_subject("lang", {1: 6, 2: 6}),
            make_subject("sci", {1: 4, 2: 4}, room_type="lab"),
        ),
        classrooms=(
            Classroom("room", "Room", "normal", count=3),
            Classroom("lab", "Lab", "lab", count=1),
        ),
    )
    return domain, make_settings({1: ["A", "B"], 2: ["A"]}, periods=3)


@pytest.fixture
def full_week() -> tuple[DomainModel, SchoolSettings]:
    """One class whose lessons fill every slot exactly."""
    domain = DomainModel(
        teachers=(make_teacher("t1", ["math"]), make_teacher("t2", ["lang"])),
        subjects=(make_subject("math", {1: 5}), make_subject("lang", {1: 5})),
        classrooms=(Classroom("r1", "Room 1", "normal"),),
    )
    return domain, make_settings()


@pytest.fixture
def snapshot(feasible_school) -> SchoolSnapshot:
    domain, settings = feasible_school
    return SchoolSnapshot("school-1", settings, domain)


@pytest.fixture
def blocked_grade() -> tuple[DomainModel, SchoolSettings]:
    """Grade 3 has a subject nobody teaches; grade 2 needs the only free slot of t1."""
    busy = [required(day, 1) for day in ("Tuesday", "Wednesday", "Thursday", "Friday")]
    domain = DomainModel(
        teachers=(
            make_teacher("t1", ["x", "y"], [1, 2], busy),
            make_teacher("t2", ["y"], [1]),
            make_teacher("t3", ["z"], [2]),
        ),
        subjects=(
            make_subject("w", {3: 5}),
            make_subject("x", {2: 1}),
            make_subject("y", {1: 5}),
            make_subject("z", {2: 4}),
        ),
        classrooms=(Classroom("room", "Room", "normal", count=3),),
    )
    return domain, make_settings({1: ["A"], 2: ["A"], 3: ["A"]}, periods=1)
