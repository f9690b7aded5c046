from __future__ import annotations

import json
from pathlib import Path

from .checks import ValidationReport


def write_validation_report(report: ValidationReport, outputs_dir: Path) -> Path:
    outputs_dir.mkdir(parents=True, exist_ok=True)
    path = outputs_dir / "validation.json"
    with path.open("w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    return path


def format_validation_report(report: ValidationReport, limit: int = 10) -> str:
    lines: list[str] = []
    lines.append(f"overall_rate: {report.overall_rate}")
    lines.append(f"is_valid: {report.is_valid}")
    lines.append(f"slots: {report.compliant_slots}/{report.counted_slots} compliant")
    lines.append("violations_by_type:")
    for k, v in sorted(report.by_type().items()):
        lines.append(f"  - {k}: {v}")
    serious = [v for v in report.violations if v.severity != "low"]
    for v in serious[:limit]:
        lines.append(f"  ! [{v.severity}] {v.day} P{v.period} {v.grade}-{v.section}: {v.message}")
    if len(serious) > limit:
        lines.append(f"  ... {len(serious) - limit} more")
    return "\n".join(lines)
