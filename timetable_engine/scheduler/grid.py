from __future__ import annotations

import logging
from typing import Iterator, List, Tuple

from ..errors import ConfigError
from ..models import SchoolSettings, Slot, SlotKey, Timetable


def check_settings(settings: SchoolSettings) -> None:
    if settings.periods_per_day <= 0:
        raise ConfigError(f"periods_per_day must be > 0 (got {settings.periods_per_day})")
    if settings.saturday_periods < 0:
        raise ConfigError(f"saturday_periods must be >= 0 (got {settings.saturday_periods})")
    if not settings.sections:
        raise ConfigError("No grades configured")
    for grade, sections in settings.sections.items():
        if not sections:
            raise ConfigError(f"Grade {grade} has no sections")
        if len(set(sections)) != len(sections):
            raise ConfigError(f"Grade {grade} has duplicate section labels: {sections}")


def iter_slot_keys(settings: SchoolSettings) -> Iterator[SlotKey]:
    """Slot keys in visiting order: grade, day, period, section."""
    for grade in settings.grades:
        for day in settings.days:
            for period in range(1, settings.periods_on(day) + 1):
                for section in settings.sections[grade]:
                    yield SlotKey(grade, section, day, period)


def build_grid(settings: SchoolSettings) -> Timetable:
    check_settings(settings)
    tt = Timetable()
    for key in iter_slot_keys(settings):
        tt.add(Slot(*key))
    logging.getLogger(__name__).info(
        f"Grid built: {len(settings.classes())} classes x {settings.slots_per_class()} slots = {len(tt)}"
    )
    return tt


def class_day_units(settings: SchoolSettings) -> List[Tuple[Tuple[int, str], str]]:
    """(class, day) work units, ordered by grade, day, section."""
    return [
        ((grade, section), day)
        for grade in settings.grades
        for day in settings.days
        for section in settings.sections[grade]
    ]


def unit_slot_keys(settings: SchoolSettings, class_id: Tuple[int, str], day: str) -> List[SlotKey]:
    grade, section = class_id
    return [SlotKey(grade, section, day, p) for p in range(1, settings.periods_on(day) + 1)]

