"""
Pure input-validation helpers for requirement records and candidate profiles.
No Flask or data-loader imports.

The evaluator assumes its inputs already passed these checks; callers run
them once at the boundary (HTTP body, bulk import, publish gate) rather than
on every evaluation.
"""

from collections import Counter
from typing import Dict, List, Optional

from requirements import (
    LEVELS,
    MAX_GRADE,
    MAX_IB_POINTS,
    MIN_GRADE,
    MIN_GROUP_SIZE,
    MIN_IB_POINTS,
)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_requirement(record: dict) -> List[str]:
    """Return error strings for one requirement record (empty when valid)."""
    errors: List[str] = []
    rid = record.get("id")
    label = rid or "<no id>"
    if not rid:
        errors.append("Requirement is missing an id.")
    if not str(record.get("subject_id") or "").strip():
        errors.append(f"Requirement {label} has no subject.")
    if record.get("required_level") not in LEVELS:
        errors.append(
            f"Requirement {label} has invalid level {record.get('required_level')!r}; must be HL or SL."
        )
    grade = record.get("min_grade")
    if not _is_int(grade) or not (MIN_GRADE <= grade <= MAX_GRADE):
        errors.append(
            f"Requirement {label} has invalid min_grade {grade!r}; must be {MIN_GRADE}-{MAX_GRADE}."
        )
    if not isinstance(record.get("is_critical"), bool):
        errors.append(f"Requirement {label} has non-boolean is_critical.")
    return errors


def validate_min_ib_points(value) -> Optional[str]:
    """Error string when value is neither None nor an integer in 0-45."""
    if value is None:
        return None
    if not _is_int(value) or not (MIN_IB_POINTS <= value <= MAX_IB_POINTS):
        return f"min_ib_points {value!r} must be an integer between {MIN_IB_POINTS} and {MAX_IB_POINTS}."
    return None


def validate_candidate_profile(profile: dict) -> List[str]:
    """Return error strings for a candidate profile (empty when valid)."""
    errors: List[str] = []
    points = profile.get("total_points")
    if not _is_int(points) or not (MIN_IB_POINTS <= points <= MAX_IB_POINTS):
        errors.append(
            f"total_points {points!r} must be an integer between {MIN_IB_POINTS} and {MAX_IB_POINTS}."
        )
    for subject_id, held in (profile.get("subjects") or {}).items():
        level = held.get("level")
        grade = held.get("grade")
        if level not in LEVELS:
            errors.append(f"{subject_id}: invalid level {level!r}; must be HL or SL.")
        if not _is_int(grade) or not (MIN_GRADE <= grade <= MAX_GRADE):
            errors.append(f"{subject_id}: grade {grade!r} must be {MIN_GRADE}-{MAX_GRADE}.")
    return errors


def find_group_inconsistencies(records: List[dict]) -> List[Dict]:
    """
    Return structural problems in OR-groups.

    Each item:
      {"or_group_id": str,
       "issue": "single_member" | "mixed_criticality",
       "requirement_ids": List[str]}

    single_member breaks the group-size invariant; mixed_criticality is
    allowed (the group counts as critical) but usually an authoring slip.
    """
    members: Dict[str, List[dict]] = {}
    for record in records:
        gid = record.get("or_group_id")
        if gid:
            members.setdefault(gid, []).append(record)

    issues: List[Dict] = []
    for gid, group in members.items():
        ids = [r.get("id") for r in group]
        if len(group) < MIN_GROUP_SIZE:
            issues.append({"or_group_id": gid, "issue": "single_member", "requirement_ids": ids})
            continue
        flags = {bool(r.get("is_critical")) for r in group}
        if len(flags) > 1:
            issues.append({"or_group_id": gid, "issue": "mixed_criticality", "requirement_ids": ids})
    return issues


def find_duplicate_ids(records: List[dict]) -> List[str]:
    counts = Counter(r.get("id") for r in records)
    return sorted(str(rid) for rid, n in counts.items() if n > 1)
