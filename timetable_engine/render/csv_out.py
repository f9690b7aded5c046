from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from ..models import DomainModel, SchoolSettings, SlotKey, Timetable

HEADER = "Grade,Section,Day,Period,Subject,Teacher,Classroom"


def _name(lookup: Dict[str, Any], ident: str | None) -> str:
    if ident is None:
        return ""
    item = lookup.get(ident)
    return item.name if item is not None else ident


def csv_blocks(tt: Timetable, settings: SchoolSettings, domain: DomainModel | None = None) -> str:
    # One block per class, separated by a blank line
    subjects = domain.subjects_by_id() if domain else {}
    teachers = domain.teachers_by_id() if domain else {}
    rooms = domain.classrooms_by_id() if domain else {}
    lines: List[str] = []
    for g, sec in settings.classes():
        lines.append(HEADER)
        for d in settings.days:
            for p in range(1, settings.periods_on(d) + 1):
                a = tt.get(SlotKey(g, sec, d, p))
                if a is None or not a.is_assigned:
                    # Leave empty if not placed
                    lines.append(f"{g},{sec},{d},{p},,,")
                    continue
                subject = _name(subjects, a.subject_id)
                teacher = _name(teachers, a.teacher_id)
                room = _name(rooms, a.classroom_id)
                lines.append(f"{g},{sec},{d},{p},{subject},{teacher},{room}")
        lines.append("")  # blank line
    return "\n".join(lines)


def write_csv_blocks(text: str, outputs_dir: Path) -> Path:
    outputs_dir.mkdir(parents=True, exist_ok=True)
    path = outputs_dir / "timetable.csv"
    with path.open("w", encoding="utf-8") as f:
        f.write(text)
    return path


def write_json(payload: Any, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return path
