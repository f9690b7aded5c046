from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .classroom import Classroom
from .settings import SchoolSettings
from .subject import Subject
from .teacher import Teacher


@dataclass(frozen=True)
class DomainModel:
    """Immutable teachers/subjects/classrooms handed over by the persistence layer."""

    teachers: Tuple[Teacher, ...] = field(default_factory=tuple)
    subjects: Tuple[Subject, ...] = field(default_factory=tuple)
    classrooms: Tuple[Classroom, ...] = field(default_factory=tuple)

    def teachers_by_id(self) -> Dict[str, Teacher]:
        return {t.id: t for t in self.teachers}

    def subjects_by_id(self) -> Dict[str, Subject]:
        return {s.id: s for s in self.subjects}

    def classrooms_by_id(self) -> Dict[str, Classroom]:
        return {c.id: c for c in self.classrooms}


@dataclass(frozen=True)
class SchoolSnapshot:
    school_id: str
    settings: SchoolSettings
    domain: DomainModel
