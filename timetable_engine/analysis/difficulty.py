from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..models import DomainModel, RestrictionLevel, SchoolSettings, Timetable


@dataclass
class TeacherDifficulty:
    teacher_id: str
    name: str
    difficulty: float
    load_share: float
    available_slots: int
    subject_count: int
    assigned_hours: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teacher_id": self.teacher_id,
            "name": self.name,
            "difficulty": None if math.isinf(self.difficulty) else round(self.difficulty, 4),
            "load_share": round(self.load_share, 2),
            "available_slots": self.available_slots,
            "subject_count": self.subject_count,
            "assigned_hours": self.assigned_hours,
        }


@dataclass
class UnassignedRequirement:
    grade: int
    section: str
    subject_id: str
    subject_name: str
    required_hours: int
    assigned_hours: int
    reasons: List[str] = field(default_factory=list)

    @property
    def missing_hours(self) -> int:
        return self.required_hours - self.assigned_hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grade": self.grade,
            "section": self.section,
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "required_hours": self.required_hours,
            "assigned_hours": self.assigned_hours,
            "missing_hours": self.missing_hours,
            "reasons": list(self.reasons),
        }


def _required_periods(teacher, settings: SchoolSettings) -> int:
    blocked = set()
    for r in teacher.restrictions:
        if r.level is not RestrictionLevel.REQUIRED or r.day not in settings.days:
            continue
        for p in r.periods:
            if 1 <= p <= settings.periods_on(r.day):
                blocked.add((r.day, p))
    return len(blocked)


def teacher_difficulties(
    domain: DomainModel,
    settings: SchoolSettings,
    tt: Timetable | None = None,
) -> List[TeacherDifficulty]:
    """Rank teachers by how tight their week is, hardest first.

    For each subject a teacher covers, the subject's weekly lessons across all
    classes are shared evenly between everyone who teaches it; the teacher's
    share is then divided by the slots left after ``required`` restrictions.
    A teacher with no free slot gets ``inf``.
    """
    subjects = domain.subjects_by_id()
    total_slots = settings.slots_per_class()
    sharers = Counter(sid for t in domain.teachers for sid in t.subject_ids)
    subject_hours: Dict[str, int] = {}
    for sid, subject in subjects.items():
        subject_hours[sid] = sum(
            subject.hours_for(g) * len(settings.sections[g]) for g in settings.grades
        )
    assigned = Counter()
    if tt is not None:
        assigned = Counter(s.teacher_id for s in tt.assigned())

    out: List[TeacherDifficulty] = []
    for t in domain.teachers:
        share = sum(subject_hours[sid] / sharers[sid] for sid in t.subject_ids if sid in subject_hours)
        available = total_slots - _required_periods(t, settings)
        if available <= 0:
            difficulty = math.inf
        else:
            difficulty = share / available
        out.append(
            TeacherDifficulty(
                teacher_id=t.id,
                name=t.name,
                difficulty=difficulty,
                load_share=share,
                available_slots=max(0, available),
                subject_count=len(t.subject_ids),
                assigned_hours=assigned.get(t.id, 0),
            )
        )
    out.sort(key=lambda d: (-d.difficulty, d.teacher_id))
    return out


def unassigned_requirements(
    tt: Timetable,
    settings: SchoolSettings,
    domain: DomainModel,
) -> List[UnassignedRequirement]:
    """Per (class, subject): lessons still missing from ``tt``."""
    placed = Counter((s.grade, s.section, s.subject_id) for s in tt.assigned())
    out: List[UnassignedRequirement] = []
    for g in settings.grades:
        for sec in settings.sections[g]:
            for subject in sorted(domain.subjects, key=lambda s: s.id):
                need = subject.hours_for(g)
                have = placed.get((g, sec, subject.id), 0)
                if need <= have:
                    continue
                reasons: List[str] = []
                if not any(t.teaches(subject.id, g) for t in domain.teachers):
                    reasons.append(f"no teacher teaches {subject.name} to grade {g}")
                if subject.requires_special_classroom and not any(
                    c.type == subject.classroom_type for c in domain.classrooms
                ):
                    reasons.append(f"no {subject.classroom_type} classroom")
                out.append(
                    UnassignedRequirement(
                        grade=g,
                        section=sec,
                        subject_id=subject.id,
                        subject_name=subject.name,
                        required_hours=need,
                        assigned_hours=have,
                        reasons=reasons,
                    )
                )
    return out
