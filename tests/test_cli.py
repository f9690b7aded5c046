import json
from pathlib import Path

from typer.testing import CliRunner

from timetable_engine.cli.main import app

runner = CliRunner()


def _school(root: Path) -> Path:
    d = root / "data" / "tiny"
    d.mkdir(parents=True)
    (d / "settings.json").write_text(json.dumps({"sections": {"1": ["A"]}, "periods_per_day": 2}))
    (d / "teachers.json").write_text(json.dumps([{"id": "t1", "name": "Tanaka", "subject_ids": ["math"], "grades": [1]}]))
    (d / "subjects.json").write_text(
        json.dumps([{"id": "math", "name": "Math", "grades": [1], "weekly_hours": {"1": 2}}])
    )
    (d / "classrooms.json").write_text(json.dumps([{"id": "r1", "name": "Room 1", "type": "normal"}]))
    return root / "data"


def _args(data_dir: Path, tmp_path: Path) -> list:
    return ["--school", "tiny", "--data-dir", str(data_dir), "--logs-dir", str(tmp_path / "logs")]


def test_generate_writes_outputs(tmp_path: Path) -> None:
    data_dir = _school(tmp_path)
    out = tmp_path / "out"
    result = runner.invoke(app, ["generate", *_args(data_dir, tmp_path), "--out-dir", str(out)])
    assert result.exit_code == 0, result.output
    assert "complete: 2/10 slots" in result.output
    records = json.loads((out / "timetable.json").read_text())
    assert len(records) == 10
    stats = json.loads((out / "statistics.json").read_text())
    assert stats["statistics"]["backtrack_count"] == 0
    csv = (out / "timetable.csv").read_text()
    assert csv.startswith("Grade,Section,Day,Period,Subject,Teacher,Classroom")
    assert "1,A,Monday,1,Math,Tanaka,Room 1" in csv


def test_validate_command(tmp_path: Path) -> None:
    data_dir = _school(tmp_path)
    out = tmp_path / "out"
    runner.invoke(app, ["generate", *_args(data_dir, tmp_path), "--out-dir", str(out)])
    result = runner.invoke(app, ["validate", str(out / "timetable.json"), *_args(data_dir, tmp_path)])
    assert result.exit_code == 0, result.output
    assert "overall_rate: 20.0" in result.output


def test_validate_flags_conflicts(tmp_path: Path) -> None:
    data_dir = _school(tmp_path)
    records = [
        {"grade": 1, "section": "A", "day": "Monday", "period": 1, "subject_id": "math", "teacher_id": "ghost"},
    ]
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(records))
    result = runner.invoke(app, ["validate", str(path), *_args(data_dir, tmp_path)])
    assert result.exit_code == 1
    assert "teacher_mismatch: 1" in result.output


def test_run_staged(tmp_path: Path) -> None:
    data_dir = _school(tmp_path)
    out = tmp_path / "out"
    result = runner.invoke(app, ["run-staged", *_args(data_dir, tmp_path), "--out-dir", str(out)])
    assert result.exit_code == 0, result.output
    assert "5 steps" in result.output
    assert "[5/5 100%]" in result.output
    assert (out / "timetable.csv").exists()


def test_diagnose_json(tmp_path: Path) -> None:
    data_dir = _school(tmp_path)
    result = runner.invoke(app, ["diagnose", *_args(data_dir, tmp_path), "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["capacity"]["max_placeable"] == 2
    assert payload["teacher_difficulties"][0]["teacher_id"] == "t1"


def test_unknown_school_exits_with_error(tmp_path: Path) -> None:
    result = runner.invoke(app, ["generate", "--school", "nope", "--data-dir", str(tmp_path), "--logs-dir", str(tmp_path / "logs")])
    assert result.exit_code == 2
