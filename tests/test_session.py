import itertools
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest

from timetable_engine.config import EngineConfig
from timetable_engine.data import InMemorySchoolSource
from timetable_engine.errors import ConfigError, IncompleteError, SessionNotFoundError
from timetable_engine.models import SchoolSnapshot
from timetable_engine.scheduler import count_hard_violations
from timetable_engine.session import SessionController, SessionState, SessionStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _controller(*snapshots: SchoolSnapshot, config: EngineConfig | None = None, clock=None):
    source = InMemorySchoolSource({s.school_id: s for s in snapshots})
    store = SessionStore(ttl_seconds=60, clock=clock) if clock else None
    counter = itertools.count(1)
    return SessionController(source, store=store, config=config, id_factory=lambda: f"s{next(counter)}")


def _drive(controller: SessionController, session_id: str, limit: int = 500):
    steps = []
    for _ in range(limit):
        step = controller.step(session_id)
        steps.append(step)
        if step.completed:
            break
    return steps


def test_create_counts_class_day_units(snapshot) -> None:
    controller = _controller(snapshot)
    created = controller.create("school-1")
    assert created.session_id == "s1"
    assert created.total_steps == 3 * 5


def test_unknown_school_is_a_config_error(snapshot) -> None:
    with pytest.raises(ConfigError):
        _controller(snapshot).create("nope")


def test_progress_is_monotonic_and_completes(snapshot) -> None:
    controller = _controller(snapshot)
    created = controller.create("school-1")
    steps = _drive(controller, created.session_id)
    currents = [s.progress.current for s in steps]
    assert currents == sorted(currents)
    assert steps[-1].completed
    assert steps[-1].progress.current == steps[-1].progress.total == created.total_steps
    assert steps[-1].progress.percentage == 100
    assert all(not s.completed for s in steps[:-1])
    assert steps[0].current_step == "Grade 1-A Monday"


def test_result_before_completion_raises(snapshot) -> None:
    controller = _controller(snapshot)
    created = controller.create("school-1")
    with pytest.raises(IncompleteError):
        controller.result(created.session_id)
    controller.step(created.session_id)
    with pytest.raises(IncompleteError):
        controller.result(created.session_id)


def test_result_is_cached_and_valid(snapshot) -> None:
    controller = _controller(snapshot)
    created = controller.create("school-1")
    _drive(controller, created.session_id)
    first = controller.result(created.session_id)
    second = controller.result(created.session_id)
    assert first is second
    assert first.timetable.to_records() == second.timetable.to_records()
    assert first.timetable.frozen
    assert first.statistics.hard_violation_count == 0
    assert count_hard_violations(first.timetable, snapshot.settings, snapshot.domain) == []
    assert first.generated_at.endswith("+00:00")
    assert "statistics" in first.to_dict()


def test_step_after_completion_keeps_progress(snapshot) -> None:
    controller = _controller(snapshot)
    created = controller.create("school-1")
    last = _drive(controller, created.session_id)[-1]
    again = controller.step(created.session_id)
    assert again.completed
    assert again.progress == last.progress


def test_unknown_session() -> None:
    controller = _controller()
    with pytest.raises(SessionNotFoundError):
        controller.step("missing")
    with pytest.raises(SessionNotFoundError):
        controller.result("missing")


def test_expired_sessions_are_purged_lazily(snapshot) -> None:
    clock = FakeClock()
    controller = _controller(snapshot, clock=clock)
    old = controller.create("school-1").session_id
    clock.now += 61
    new = controller.create("school-1").session_id
    assert old not in controller.store
    assert new in controller.store
    with pytest.raises(SessionNotFoundError):
        controller.step(old)


def test_ttl_slides_on_access(snapshot) -> None:
    clock = FakeClock()
    controller = _controller(snapshot, clock=clock)
    sid = controller.create("school-1").session_id
    for _ in range(3):
        clock.now += 40
        controller.step(sid)
    assert sid in controller.store


def test_step_budget_pauses_then_settles(scenario_b) -> None:
    domain, settings = scenario_b
    snap = SchoolSnapshot("b", settings, domain)
    cfg = EngineConfig(step_budget=1, max_unit_attempts=2)
    controller = _controller(snap, config=cfg)
    sid = controller.create("b").session_id

    first = controller.step(sid)
    assert not first.completed
    assert first.progress.current == 0
    assert first.error and "step budget" in first.error[0]

    # the paused unit resumes where it stopped
    second = controller.step(sid)
    assert second.progress.current == 1

    # class B cannot have its Monday lesson; after two paused calls the unit is settled
    third = controller.step(sid)
    assert third.progress.current == 1
    assert third.error and "step budget" in third.error[0]
    fourth = controller.step(sid)
    assert fourth.progress.current == 2
    assert any("no exact fill" in m for m in fourth.error)

    steps = _drive(controller, sid)
    assert steps[-1].completed
    result = controller.result(sid)
    assert result.statistics.hard_violation_count == 0
    assert result.statistics.unassigned_slots >= 1


def test_infeasible_data_reports_gaps_without_failing(scenario_b) -> None:
    domain, settings = scenario_b
    controller = _controller(SchoolSnapshot("b", settings, domain))
    sid = controller.create("b").session_id
    steps = _drive(controller, sid)
    assert steps[-1].completed
    messages = [m for s in steps for m in (s.error or [])]
    assert any("1-B" in m and "left empty" in m for m in messages)
    result = controller.result(sid)
    assert result.statistics.status == "infeasible"
    assert sum(1 for s in result.timetable.assigned() if s.section == "A") == 5


def test_failure_marks_session_failed(snapshot, monkeypatch) -> None:
    controller = _controller(snapshot)
    sid = controller.create("school-1").session_id

    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(controller, "_run_unit", boom)
    with pytest.raises(RuntimeError):
        controller.step(sid)
    session = controller.store.get(sid)
    assert session.status is SessionState.FAILED
    with pytest.raises(IncompleteError):
        controller.result(sid)
    assert not controller.step(sid).completed


def test_interleaved_sessions_match_a_solo_run(snapshot) -> None:
    solo = _controller(snapshot)
    solo_id = solo.create("school-1").session_id
    _drive(solo, solo_id)
    expected = solo.result(solo_id)

    controller = _controller(snapshot)
    ids = [controller.create("school-1").session_id for _ in range(2)]
    done = set()
    for _ in range(500):
        for sid in ids:
            if sid not in done and controller.step(sid).completed:
                done.add(sid)
        if len(done) == len(ids):
            break
    assert done == set(ids)
    results = [controller.result(sid) for sid in ids]
    for res in results:
        assert res.timetable.to_records() == expected.timetable.to_records()
        assert res.statistics.backtrack_count == expected.statistics.backtrack_count
    assert results[0].timetable is not results[1].timetable


def test_sessions_on_threads_stay_isolated(snapshot) -> None:
    controller = _controller(snapshot)
    ids = [controller.create("school-1").session_id for _ in range(4)]
    with ThreadPoolExecutor(max_workers=4) as pool:
        runs = list(pool.map(lambda sid: _drive(controller, sid), ids))
    assert all(steps[-1].completed for steps in runs)
    records = [controller.result(sid).timetable.to_records() for sid in ids]
    assert all(r == records[0] for r in records)
    assert len(controller.store) == 4


def test_staged_run_searches_past_a_blocked_subject(blocked_grade) -> None:
    domain, settings = blocked_grade
    controller = _controller(SchoolSnapshot("blocked", settings, domain))
    sid = controller.create("blocked").session_id
    steps = _drive(controller, sid)
    assert "no teacher teaches W to grade 3" in steps[0].error
    result = controller.result(sid)
    placed = Counter(s.subject_id for s in result.timetable.assigned() if s.grade == 2)
    assert placed == {"x": 1, "z": 4}
    assert result.statistics.unplaced_lessons == 5
