from requirements import (
    LEVEL_RANK,
    describe_requirement,
    level_satisfies,
    program_type,
)
from or_groups import group_records, resolve_groups


def build_candidate_profile(total_points: int, courses: list[dict]) -> dict:
    """
    Build a candidate profile from [{"subject_id", "level", "grade"}, ...].

    A candidate holds each subject at one level only. An exact repeat of a
    course is collapsed; the same subject at two levels (or with two grades)
    raises ValueError.

    Returns:
      {"total_points": int, "subjects": {subject_id: {"level": str, "grade": int}}}
    """
    subjects: dict[str, dict] = {}
    for course in courses or []:
        subject_id = str(course.get("subject_id") or "").strip()
        if not subject_id:
            continue
        entry = {"level": course.get("level"), "grade": int(course.get("grade"))}
        existing = subjects.get(subject_id)
        if existing is not None and existing != entry:
            raise ValueError(
                f"{subject_id} listed twice ({existing['level']} {existing['grade']} and "
                f"{entry['level']} {entry['grade']}); a subject can be held at one level only."
            )
        subjects[subject_id] = entry
    return {"total_points": int(total_points), "subjects": subjects}


def subject_grade(profile: dict, subject_id: str, level: str) -> int | None:
    """Grade for subject_id taken at exactly `level`, or None when not taken at that level."""
    held = profile.get("subjects", {}).get(subject_id)
    if held is None or held.get("level") != level:
        return None
    return held.get("grade")


def evaluate_requirement(record: dict, profile: dict) -> dict:
    """
    Check one requirement against the candidate.

    Satisfied iff the candidate holds the subject at the required level or
    higher (HL covers SL, SL never covers HL) with grade >= min_grade.

    Returns:
    {
      "requirement_id": str,
      "subject_id": str,
      "required_level": str,
      "min_grade": int,
      "satisfied": bool,
      "status": "met" | "grade_below" | "level_below" | "not_taken",
      "reason": str | None,
      "candidate_level": str | None,
      "candidate_grade": int | None,
    }
    """
    subject_id = record.get("subject_id")
    required_level = record.get("required_level")
    min_grade = record.get("min_grade")
    held = profile.get("subjects", {}).get(subject_id)

    detail = {
        "requirement_id": record.get("id"),
        "subject_id": subject_id,
        "required_level": required_level,
        "min_grade": min_grade,
        "satisfied": False,
        "status": "not_taken",
        "reason": "Subject not taken",
        "candidate_level": None,
        "candidate_grade": None,
    }
    if held is None or held.get("level") not in LEVEL_RANK:
        return detail

    level = held["level"]
    grade = held.get("grade")
    detail["candidate_level"] = level
    detail["candidate_grade"] = grade

    if not level_satisfies(level, required_level):
        detail["status"] = "level_below"
        detail["reason"] = f"Level mismatch: {level} instead of {required_level} (grade {grade})"
        return detail

    if grade is None or grade < min_grade:
        gap = min_grade - (grade or 0)
        detail["status"] = "grade_below"
        detail["reason"] = f"Grade {gap} point{'s' if gap > 1 else ''} below requirement"
        return detail

    detail["satisfied"] = True
    detail["status"] = "met"
    detail["reason"] = None
    return detail


def evaluate_group(group: dict, profile: dict) -> dict:
    """
    A group is satisfied when any member requirement is satisfied; a
    stand-alone group has exactly one member. The first satisfied member in
    record order is reported as the match.
    """
    details = [evaluate_requirement(r, profile) for r in group_records(group)]
    matched = next((d for d in details if d["satisfied"]), None)
    return {
        "group_id": group["group_id"],
        "type": group["type"],
        "is_critical": bool(group["is_critical"]),
        "satisfied": matched is not None,
        "matched_requirement_id": matched["requirement_id"] if matched else None,
        "matched_subject_id": matched["subject_id"] if matched else None,
        "details": details,
    }


def _advisory_warning(group: dict) -> str:
    options = " or ".join(describe_requirement(r) for r in group_records(group))
    return f"Recommended but not required: {options}"


def evaluate_program(requirement_set: dict, profile: dict) -> dict:
    """
    Pass/fail eligibility of a candidate for one program.

    Eligible iff the points threshold is met (always a disqualifying check;
    no threshold when min_ib_points is None) and every critical group is
    satisfied. Unsatisfied non-critical groups are advisory: reported in
    unmet_advisory_groups and warnings, never flipping eligibility.

    Grades and points are assumed already validated (see validators.py);
    a subject missing from the profile simply leaves its requirement unmet.

    Returns:
    {
      "program_id": str | None,
      "program_type": str,
      "eligible": bool,
      "points_met": bool,
      "points_shortfall": int,
      "failed_critical_groups": [group_id, ...],
      "unmet_advisory_groups": [group_id, ...],
      "groups": [group result, ...],
      "warnings": [str, ...],
    }
    """
    min_points = requirement_set.get("min_ib_points")
    total_points = int(profile.get("total_points") or 0)
    points_met = min_points is None or total_points >= min_points
    shortfall = 0 if min_points is None else max(0, min_points - total_points)

    groups = resolve_groups(requirement_set.get("requirements") or [])
    group_results: list[dict] = []
    failed_critical: list[str] = []
    unmet_advisory: list[str] = []
    warnings: list[str] = []

    for group in groups:
        result = evaluate_group(group, profile)
        group_results.append(result)
        if result["satisfied"]:
            continue
        if result["is_critical"]:
            failed_critical.append(result["group_id"])
        else:
            unmet_advisory.append(result["group_id"])
            warnings.append(_advisory_warning(group))

    return {
        "program_id": requirement_set.get("program_id"),
        "program_type": program_type(requirement_set),
        "eligible": points_met and not failed_critical,
        "points_met": points_met,
        "points_shortfall": shortfall,
        "failed_critical_groups": failed_critical,
        "unmet_advisory_groups": unmet_advisory,
        "groups": group_results,
        "warnings": warnings,
    }


def evaluate_programs(
    requirement_sets: list[dict],
    profile: dict,
    include_ineligible: bool = False,
) -> list[dict]:
    """Evaluate many programs in input order; ineligible verdicts are dropped unless requested."""
    verdicts = [evaluate_program(rs, profile) for rs in requirement_sets]
    if include_ineligible:
        return verdicts
    return [v for v in verdicts if v["eligible"]]
