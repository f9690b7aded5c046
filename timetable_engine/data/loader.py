from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol

from ..errors import ConfigError, DataError
from ..models import (
    ALL_DAYS,
    AssignmentRestriction,
    Classroom,
    DomainModel,
    RestrictionLevel,
    SchoolSettings,
    SchoolSnapshot,
    Subject,
    Teacher,
)


class SchoolSource(Protocol):
    def load(self, school_id: str) -> SchoolSnapshot: ...


def load_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise DataError(f"File not found: {path}") from e
    except json.JSONDecodeError as e:
        raise DataError(f"Invalid JSON in {path}: {e}") from e


def parse_settings(raw: Mapping[str, Any]) -> SchoolSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError("School settings must be an object")
    try:
        sections_raw = raw["sections"]
        periods = int(raw["periods_per_day"])
        saturday = int(raw.get("saturday_periods", 0))
    except KeyError as e:
        raise ConfigError(f"School settings missing {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"School settings have a non-integer period count: {e}") from e
    if not isinstance(sections_raw, Mapping):
        raise ConfigError("'sections' must map grade -> list of section labels")
    try:
        sections = {int(g): [str(s) for s in labels] for g, labels in sections_raw.items()}
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Bad grade/section mapping: {e}") from e
    free: List[tuple[str, int]] = []
    for item in raw.get("free_periods", []) or []:
        try:
            day, period = item
            free.append((_day(day), int(period)))
        except (TypeError, ValueError, DataError) as e:
            raise ConfigError(f"Bad free period {item!r}: {e}") from e
    return SchoolSettings(
        sections=sections,
        periods_per_day=periods,
        saturday_periods=saturday,
        free_periods=tuple(free),
    )


def parse_teacher(raw: Mapping[str, Any]) -> Teacher:
    try:
        restrictions = tuple(
            AssignmentRestriction(
                day=_day(r["day"]),
                periods=frozenset(int(p) for p in r.get("periods", [])),
                level=RestrictionLevel(r.get("level", "required")),
                reason=str(r.get("reason", "")),
            )
            for r in raw.get("restrictions", [])
        )
        return Teacher(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            subject_ids=frozenset(str(s) for s in raw.get("subject_ids", [])),
            grades=frozenset(int(g) for g in raw.get("grades", [])),
            restrictions=restrictions,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DataError(f"Malformed teacher record {raw!r}: {e}") from e


def parse_subject(raw: Mapping[str, Any]) -> Subject:
    try:
        hours = {int(g): int(h) for g, h in (raw.get("weekly_hours") or {}).items()}
        if any(h < 0 for h in hours.values()):
            raise ValueError("weekly hours must be >= 0")
        return Subject(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            grades=frozenset(int(g) for g in raw.get("grades", [])),
            weekly_hours=hours,
            requires_special_classroom=bool(raw.get("requires_special_classroom", False)),
            classroom_type=raw.get("classroom_type"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DataError(f"Malformed subject record {raw!r}: {e}") from e


def parse_classroom(raw: Mapping[str, Any]) -> Classroom:
    try:
        count = int(raw.get("count", 1))
        if count < 1:
            raise ValueError("count must be >= 1")
        return Classroom(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            type=str(raw["type"]),
            capacity=int(raw.get("capacity", 0)),
            count=count,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DataError(f"Malformed classroom record {raw!r}: {e}") from e


def parse_domain(
    teachers: List[Mapping[str, Any]],
    subjects: List[Mapping[str, Any]],
    classrooms: List[Mapping[str, Any]],
) -> DomainModel:
    return DomainModel(
        teachers=tuple(parse_teacher(t) for t in teachers),
        subjects=tuple(parse_subject(s) for s in subjects),
        classrooms=tuple(parse_classroom(c) for c in classrooms),
    )


def _day(value: Any) -> str:
    day = str(value).strip().capitalize()
    if day not in ALL_DAYS:
        raise DataError(f"Unknown day {value!r}")
    return day


def _records(payload: Any, key: str) -> List[Dict[str, Any]]:
    # Accept either a bare list or {"<key>": [...]}
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise DataError(f"Expected a list of {key}")
    return payload


class JsonSchoolSource:
    """Reads data/<school_id>/{settings,teachers,subjects,classrooms}.json."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def school_dir(self, school_id: str) -> Path:
        return self.root / school_id

    def load(self, school_id: str) -> SchoolSnapshot:
        d = self.school_dir(school_id)
        settings_path = d / "settings.json"
        if not settings_path.exists():
            raise ConfigError(f"No settings for school {school_id!r} at {settings_path}")
        settings = parse_settings(load_json(settings_path))
        domain = parse_domain(
            _records(self._optional(d / "teachers.json"), "teachers"),
            _records(self._optional(d / "subjects.json"), "subjects"),
            _records(self._optional(d / "classrooms.json"), "classrooms"),
        )
        return SchoolSnapshot(school_id=school_id, settings=settings, domain=domain)

    @staticmethod
    def _optional(path: Path) -> Any:
        return load_json(path) if path.exists() else []


class InMemorySchoolSource:
    def __init__(self, snapshots: Mapping[str, SchoolSnapshot] | None = None):
        self._snapshots: Dict[str, SchoolSnapshot] = dict(snapshots or {})

    def add(self, snapshot: SchoolSnapshot) -> None:
        self._snapshots[snapshot.school_id] = snapshot

    def load(self, school_id: str) -> SchoolSnapshot:
        try:
            return self._snapshots[school_id]
        except KeyError:
            raise ConfigError(f"No settings for school {school_id!r}") from None
