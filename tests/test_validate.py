from timetable_engine.models import Candidate, SlotKey
from timetable_engine.scheduler import build_grid, generate
from timetable_engine.validate import format_validation_report, validate, write_validation_report

from conftest import make_settings, make_subject, make_teacher, required


def test_scenario_a_rate_counts_the_empty_slots(scenario_a) -> None:
    domain, settings = scenario_a
    tt = generate(domain, settings).timetable
    report = validate(tt, domain.teachers, domain.subjects)
    assert report.overall_rate == 20.0
    assert report.by_type() == {"empty_slot": 8}
    assert all(v.severity == "low" for v in report.violations)
    assert report.is_valid


def test_feasible_output_scores_100(full_week) -> None:
    domain, settings = full_week
    tt = generate(domain, settings).timetable
    report = validate(tt, domain.teachers, domain.subjects)
    assert report.overall_rate == 100.0
    assert report.violations == []


def test_validate_is_idempotent_and_does_not_mutate(scenario_a) -> None:
    domain, settings = scenario_a
    tt = generate(domain, settings).timetable
    before = tt.to_records()
    first = validate(tt, domain.teachers, domain.subjects).to_dict()
    second = validate(tt, domain.teachers, domain.subjects).to_dict()
    assert first == second
    assert tt.to_records() == before


def test_conflict_and_mismatch_on_external_grid() -> None:
    settings = make_settings({1: ["A", "B"]}, periods=1)
    teachers = [make_teacher("t1", ["math"]), make_teacher("t2", ["lang"])]
    subjects = [make_subject("math", {1: 5}), make_subject("lang", {1: 5})]
    tt = build_grid(settings)
    tt.assign(SlotKey(1, "A", "Monday", 1), Candidate("math", "t1", None))
    tt.assign(SlotKey(1, "B", "Monday", 1), Candidate("math", "t1", None))
    tt.assign(SlotKey(1, "A", "Tuesday", 1), Candidate("math", "t2", None))
    report = validate(tt, teachers, subjects)
    kinds = report.by_type()
    assert kinds["teacher_conflict"] == 2
    assert kinds["teacher_mismatch"] == 1
    assert kinds["empty_slot"] == 7
    assert not report.is_valid
    severities = {v.type: v.severity for v in report.violations}
    assert severities == {"teacher_conflict": "high", "teacher_mismatch": "medium", "empty_slot": "low"}
    assert report.overall_rate == 0.0


def test_restriction_and_hours_checks() -> None:
    settings = make_settings(periods=1)
    teachers = [make_teacher("t1", ["math"], restrictions=[required("Friday", 1)])]
    subjects = [make_subject("math", {1: 1})]
    tt = build_grid(settings)
    tt.assign(SlotKey(1, "A", "Monday", 1), Candidate("math", "t1", None))
    tt.assign(SlotKey(1, "A", "Friday", 1), Candidate("math", "t1", None))
    report = validate(tt, teachers, subjects)
    kinds = report.by_type()
    assert kinds["restriction_violation"] == 1
    assert kinds["hours_exceeded"] == 1
    # Monday is the first lesson and within the weekly hours
    assert report.compliant_slots == 1
    assert report.overall_rate == 20.0


def test_allowed_empty_slots_are_not_counted(scenario_a) -> None:
    domain, settings = scenario_a
    tt = generate(domain, settings).timetable
    allowed = [(d, 2) for d in settings.days]
    report = validate(tt, domain.teachers, domain.subjects, allowed_empty=allowed)
    assert report.by_type() == {"empty_slot": 3}
    assert report.counted_slots == 5
    assert report.overall_rate == 40.0


def test_free_periods_come_from_settings(scenario_a) -> None:
    domain, _ = scenario_a
    settings = make_settings(free_periods=(("Friday", 1), ("Friday", 2)))
    tt = generate(domain, settings).timetable
    report = validate(tt, domain.teachers, domain.subjects, settings=settings)
    assert report.counted_slots == 8
    assert report.overall_rate == 25.0


def test_report_text_and_file(tmp_path, scenario_a) -> None:
    domain, settings = scenario_a
    report = validate(generate(domain, settings).timetable, domain.teachers, domain.subjects)
    text = format_validation_report(report)
    assert "overall_rate: 20.0" in text
    assert "empty_slot: 8" in text
    path = write_validation_report(report, tmp_path / "out")
    assert path.read_text(encoding="utf-8").startswith("{")
