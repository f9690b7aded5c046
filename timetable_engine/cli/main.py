from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

import typer

from ..analysis import capacity_bound, teacher_difficulties, unassigned_requirements
from ..config import load_config
from ..data.loader import JsonSchoolSource, load_json
from ..errors import TimetableEngineError
from ..models import SchoolSnapshot, Timetable
from ..render.csv_out import csv_blocks, write_csv_blocks, write_json
from ..scheduler import GenerationOptions, generate
from ..session import SessionController
from ..validate import format_validation_report, validate, write_validation_report

PROJECT_ROOT = Path(__file__).resolve().parents[2]

app = typer.Typer(add_completion=False, help="School timetable generator")


def _setup_logging(logs_dir: Path, log_level: str = "INFO") -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(logs_dir / "engine.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    logging.getLogger().setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _load(data_dir: Path, school: str) -> SchoolSnapshot:
    return JsonSchoolSource(data_dir).load(school)


def _read_timetable(path: Path) -> Timetable:
    payload = load_json(path)
    records = payload.get("timetable", []) if isinstance(payload, dict) else payload
    return Timetable.from_records(records)


def _write_outputs(
    out_dir: Path, snapshot: SchoolSnapshot, tt: Timetable, payload: Dict[str, object]
) -> List[Path]:
    paths = [
        write_json(tt.to_records(), out_dir / "timetable.json"),
        write_csv_blocks(csv_blocks(tt, snapshot.settings, snapshot.domain), out_dir),
        write_json(payload, out_dir / "statistics.json"),
    ]
    return paths


def _fail(e: TimetableEngineError) -> None:
    logging.getLogger(__name__).error(str(e))
    typer.echo(f"error: {e}", err=True)
    raise typer.Exit(code=2)


@app.command("generate")
def cli_generate(
    school: str = typer.Option("demo", help="School id (directory under --data-dir)"),
    data_dir: Path = typer.Option(PROJECT_ROOT / "data", help="Directory holding school data"),
    out_dir: Path = typer.Option(Path("outputs"), help="Where timetable.json/.csv and statistics.json go"),
    config: Path | None = typer.Option(None, help="Engine config TOML (default configs/engine.toml)"),
    max_backtracks: int | None = typer.Option(None, help="Override [search] max_backtracks"),
    timeout: float | None = typer.Option(None, help="Override [search] timeout_seconds"),
    log_level: str = typer.Option("INFO", help="Log level"),
    logs_dir: Path = typer.Option(Path("logs"), help="Directory for engine.log"),
) -> None:
    """One-shot generation."""
    _setup_logging(logs_dir, log_level)
    try:
        cfg = load_config(config)
        snapshot = _load(data_dir, school)
    except TimetableEngineError as e:
        _fail(e)
    opts = GenerationOptions.from_config(cfg)
    if max_backtracks is not None:
        opts.max_backtracks = max_backtracks
    if timeout is not None:
        opts.timeout_seconds = timeout
    result = generate(snapshot.domain, snapshot.settings, opts)
    stats = result.statistics
    payload = {"statistics": stats.to_dict(), "blockers": result.blockers}
    _write_outputs(out_dir, snapshot, result.timetable, payload)
    typer.echo(
        f"{stats.status}: {stats.assigned_slots}/{stats.total_slots} slots "
        f"({stats.assignment_rate}%), {stats.unplaced_lessons} lessons unplaced, "
        f"{stats.backtrack_count} backtracks"
    )
    for b in result.blockers:
        typer.echo(f"  - {b}")


@app.command("run-staged")
def cli_run_staged(
    school: str = typer.Option("demo", help="School id (directory under --data-dir)"),
    data_dir: Path = typer.Option(PROJECT_ROOT / "data", help="Directory holding school data"),
    out_dir: Path = typer.Option(Path("outputs"), help="Where timetable.json/.csv and statistics.json go"),
    config: Path | None = typer.Option(None, help="Engine config TOML (default configs/engine.toml)"),
    max_calls: int = typer.Option(10_000, help="Give up after this many step() calls"),
    log_level: str = typer.Option("INFO", help="Log level"),
    logs_dir: Path = typer.Option(Path("logs"), help="Directory for engine.log"),
) -> None:
    """Drive create/step/result and print one progress line per step."""
    _setup_logging(logs_dir, log_level)
    try:
        cfg = load_config(config)
        source = JsonSchoolSource(data_dir)
        controller = SessionController(source, config=cfg)
        created = controller.create(school)
    except TimetableEngineError as e:
        _fail(e)
    typer.echo(f"session {created.session_id}: {created.total_steps} steps")
    completed = created.total_steps == 0
    calls = 0
    while not completed and calls < max_calls:
        calls += 1
        step = controller.step(created.session_id)
        p = step.progress
        typer.echo(f"[{p.current}/{p.total} {p.percentage:3d}%] {step.current_step}")
        for msg in step.error or []:
            typer.echo(f"    {msg}")
        completed = step.completed
    if not completed:
        typer.echo(f"stopped after {calls} calls without finishing", err=True)
        raise typer.Exit(code=1)
    res = controller.result(created.session_id)
    snapshot = source.load(school)
    payload = {"statistics": res.statistics.to_dict(), "generated_at": res.generated_at}
    _write_outputs(out_dir, snapshot, res.timetable, payload)
    stats = res.statistics
    typer.echo(
        f"{stats.status}: {stats.assigned_slots}/{stats.total_slots} slots "
        f"({stats.assignment_rate}%), generated at {res.generated_at}"
    )


@app.command("validate")
def cli_validate(
    timetable: Path = typer.Argument(..., help="Timetable JSON (list of slot records)"),
    school: str = typer.Option("demo", help="School id whose records to check against"),
    data_dir: Path = typer.Option(PROJECT_ROOT / "data", help="Directory holding school data"),
    out_dir: Path | None = typer.Option(None, help="Also write validation.json here"),
    log_level: str = typer.Option("INFO", help="Log level"),
    logs_dir: Path = typer.Option(Path("logs"), help="Directory for engine.log"),
) -> None:
    """Score a timetable file; exit code 1 when it is not valid."""
    _setup_logging(logs_dir, log_level)
    try:
        snapshot = _load(data_dir, school)
        tt = _read_timetable(timetable)
    except TimetableEngineError as e:
        _fail(e)
    report = validate(tt, snapshot.domain.teachers, snapshot.domain.subjects, settings=snapshot.settings)
    if out_dir is not None:
        write_validation_report(report, out_dir)
    typer.echo(format_validation_report(report))
    if not report.is_valid:
        raise typer.Exit(code=1)


@app.command("diagnose")
def cli_diagnose(
    school: str = typer.Option("demo", help="School id (directory under --data-dir)"),
    data_dir: Path = typer.Option(PROJECT_ROOT / "data", help="Directory holding school data"),
    config: Path | None = typer.Option(None, help="Engine config TOML (default configs/engine.toml)"),
    timetable: Path | None = typer.Option(None, help="Finished timetable JSON to list missing lessons for"),
    capacity: bool = typer.Option(True, help="Solve the CP-SAT capacity bound"),
    timeout: float = typer.Option(10.0, help="CP-SAT time limit in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of text"),
    log_level: str = typer.Option("INFO", help="Log level"),
    logs_dir: Path = typer.Option(Path("logs"), help="Directory for engine.log"),
) -> None:
    """Requirement analysis: teacher difficulty, missing lessons, capacity bound."""
    _setup_logging(logs_dir, log_level)
    try:
        cfg = load_config(config)
        snapshot = _load(data_dir, school)
        tt = _read_timetable(timetable) if timetable else None
    except TimetableEngineError as e:
        _fail(e)
    difficulties = teacher_difficulties(snapshot.domain, snapshot.settings, tt)
    missing = unassigned_requirements(tt, snapshot.settings, snapshot.domain) if tt else []
    bound = (
        capacity_bound(
            snapshot.domain,
            snapshot.settings,
            normal_classroom_type=cfg.normal_classroom_type,
            timeout_sec=timeout,
        )
        if capacity
        else None
    )
    if as_json:
        typer.echo(
            json.dumps(
                {
                    "teacher_difficulties": [d.to_dict() for d in difficulties],
                    "unassigned_requirements": [m.to_dict() for m in missing],
                    "capacity": bound.to_dict() if bound else None,
                },
                indent=2,
            )
        )
        return
    typer.echo("teacher difficulty (hardest first):")
    for d in difficulties:
        score = "inf" if d.to_dict()["difficulty"] is None else f"{d.difficulty:.3f}"
        typer.echo(f"  - {d.name}: {score} ({d.load_share:.1f} lessons over {d.available_slots} slots)")
    if tt is not None:
        typer.echo(f"missing lessons: {sum(m.missing_hours for m in missing)}")
        for m in missing:
            why = f" [{'; '.join(m.reasons)}]" if m.reasons else ""
            typer.echo(
                f"  - {m.grade}-{m.section} {m.subject_name}: {m.assigned_hours}/{m.required_hours}{why}"
            )
    if bound is not None:
        typer.echo(
            f"capacity: {bound.max_placeable}/{bound.required_lessons} lessons placeable "
            f"(status={bound.status})"
        )


if __name__ == "__main__":  # pragma: no cover
    app()
