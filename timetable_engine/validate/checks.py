from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set, Tuple

from ..models import ALL_DAYS, RestrictionLevel, SchoolSettings, Slot, SlotKey, Subject, Teacher, Timetable

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

TEACHER_CONFLICT = "teacher_conflict"
TEACHER_MISMATCH = "teacher_mismatch"
EMPTY_SLOT = "empty_slot"
RESTRICTION_VIOLATION = "restriction_violation"
HOURS_EXCEEDED = "hours_exceeded"

CHECKED_CONSTRAINTS = [
    TEACHER_CONFLICT,
    TEACHER_MISMATCH,
    EMPTY_SLOT,
    RESTRICTION_VIOLATION,
    HOURS_EXCEEDED,
]


@dataclass(frozen=True)
class Violation:
    type: str
    severity: str
    day: str
    period: int
    grade: int
    section: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "day": self.day,
            "period": self.period,
            "grade": self.grade,
            "section": self.section,
            "message": self.message,
        }


@dataclass
class ValidationReport:
    overall_rate: float
    violations: List[Violation] = field(default_factory=list)
    checked_constraints: List[str] = field(default_factory=lambda: list(CHECKED_CONSTRAINTS))
    counted_slots: int = 0
    compliant_slots: int = 0

    @property
    def is_valid(self) -> bool:
        return not any(v.severity in (HIGH, MEDIUM) for v in self.violations)

    def by_type(self) -> Dict[str, int]:
        return dict(Counter(v.type for v in self.violations))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_rate": self.overall_rate,
            "is_valid": self.is_valid,
            "violations": [v.to_dict() for v in self.violations],
            "checked_constraints": list(self.checked_constraints),
            "counted_slots": self.counted_slots,
            "compliant_slots": self.compliant_slots,
        }


def _day_pos(day: str) -> int:
    return ALL_DAYS.index(day) if day in ALL_DAYS else len(ALL_DAYS)


def _order(slot: Slot) -> Tuple[int, int, int, str]:
    return (_day_pos(slot.day), slot.period, slot.grade, slot.section)


def _violation(kind: str, severity: str, slot: Slot, message: str) -> Violation:
    return Violation(kind, severity, slot.day, slot.period, slot.grade, slot.section, message)


def validate(
    tt: Timetable,
    teachers: Iterable[Teacher],
    subjects: Iterable[Subject],
    allowed_empty: Iterable[Tuple[str, int]] | None = None,
    settings: SchoolSettings | None = None,
) -> ValidationReport:
    """Score a grid against the hard constraints without touching it.

    The rate is compliant slots over counted slots, as a percentage rounded to
    two decimals. Empty slots at an allowed (day, period) are not counted;
    ``settings.free_periods`` are added to ``allowed_empty``.
    """
    teacher_map = {t.id: t for t in teachers}
    subject_map = {s.id: s for s in subjects}
    allowed: Set[Tuple[str, int]] = set(allowed_empty or ())
    if settings is not None:
        allowed.update(settings.free_periods)

    slots = sorted(tt.all(), key=_order)
    violations: List[Violation] = []
    bad: Set[SlotKey] = set()

    # Teacher clashes: every slot in the clashing group is non-compliant
    by_time: Dict[Tuple[str, str, int], List[Slot]] = defaultdict(list)
    for s in slots:
        if s.is_assigned and s.teacher_id:
            by_time[(s.teacher_id, s.day, s.period)].append(s)
    for (teacher_id, day, period), group in by_time.items():
        if len(group) < 2:
            continue
        name = teacher_map[teacher_id].name if teacher_id in teacher_map else teacher_id
        classes = ", ".join(f"{g.grade}-{g.section}" for g in group)
        for s in group:
            bad.add(s.key)
            violations.append(
                _violation(
                    TEACHER_CONFLICT,
                    HIGH,
                    s,
                    f"{name} teaches {len(group)} classes at {day} P{period} ({classes})",
                )
            )

    placed: Counter = Counter()
    for s in slots:
        if not s.is_assigned:
            if (s.day, s.period) not in allowed:
                violations.append(_violation(EMPTY_SLOT, LOW, s, "No lesson assigned"))
            continue
        placed[(s.grade, s.section, s.subject_id)] += 1
        teacher = teacher_map.get(s.teacher_id) if s.teacher_id else None
        subject = subject_map.get(s.subject_id)
        subject_name = subject.name if subject else s.subject_id
        if teacher is None:
            bad.add(s.key)
            violations.append(
                _violation(TEACHER_MISMATCH, MEDIUM, s, f"Teacher {s.teacher_id!r} is not in the staff records")
            )
            continue
        if not teacher.teaches(s.subject_id, s.grade):
            bad.add(s.key)
            violations.append(
                _violation(
                    TEACHER_MISMATCH,
                    MEDIUM,
                    s,
                    f"{teacher.name} does not teach {subject_name} to grade {s.grade}",
                )
            )
        if teacher.restriction_at(s.day, s.period) is RestrictionLevel.REQUIRED:
            bad.add(s.key)
            violations.append(
                _violation(
                    RESTRICTION_VIOLATION,
                    HIGH,
                    s,
                    f"{teacher.name} is unavailable on {s.day} P{s.period}",
                )
            )

    # Over-quota: the lessons past the weekly hours, in week order
    seen: Counter = Counter()
    for s in slots:
        if not s.is_assigned:
            continue
        cls_subj = (s.grade, s.section, s.subject_id)
        seen[cls_subj] += 1
        subject = subject_map.get(s.subject_id)
        limit = subject.hours_for(s.grade) if subject else 0
        if seen[cls_subj] > limit:
            bad.add(s.key)
            name = subject.name if subject else s.subject_id
            violations.append(
                _violation(
                    HOURS_EXCEEDED,
                    MEDIUM,
                    s,
                    f"{s.grade}-{s.section} has {placed[cls_subj]} {name} lessons, weekly hours are {limit}",
                )
            )

    counted = [s for s in slots if s.is_assigned or (s.day, s.period) not in allowed]
    compliant = sum(1 for s in counted if s.is_assigned and s.key not in bad)
    rate = round(compliant / len(counted) * 100, 2) if counted else 100.0
    violations.sort(key=lambda v: (_day_pos(v.day), v.period, v.grade, v.section, v.type))
    return ValidationReport(
        overall_rate=rate,
        violations=violations,
        counted_slots=len(counted),
        compliant_slots=compliant,
    )
