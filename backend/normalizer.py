import re

# Matches: MATH-AA, math aa, Math_AA, PHYS, ENG-A-LL, CS, etc.
CANONICAL = re.compile(r'^([A-Za-z]{2,8})(?:[\s_-]+([A-Za-z0-9]{1,4}))*$')
_PART_SPLIT = re.compile(r'[\s_-]+')

_LEVEL_ALIASES = {
    "HL": "HL",
    "HIGHER": "HL",
    "HIGHER LEVEL": "HL",
    "SL": "SL",
    "STANDARD": "SL",
    "STANDARD LEVEL": "SL",
}

# Candidate course token: SUBJECT:LEVEL:GRADE
COURSE_TOKEN = re.compile(r'^\s*([^:]+?)\s*:\s*([^:]+?)\s*:\s*(\d+)\s*$')


def normalize_subject_code(raw: str) -> str | None:
    """
    Normalizes an IB subject code to canonical upper-case, hyphen-joined form.
    Handles: 'math aa', 'MATH_AA', 'Math-AA', 'phys', 'eng a ll'
    Returns None if the string cannot be parsed as a subject code.
    """
    if not raw or not str(raw).strip():
        return None
    s = str(raw).strip()
    if not CANONICAL.match(s):
        return None
    parts = [p for p in _PART_SPLIT.split(s) if p]
    return "-".join(p.upper() for p in parts)


def normalize_level(raw) -> str | None:
    """'hl', 'Higher Level', 'standard' -> 'HL' / 'SL'. None if unrecognized."""
    if raw is None:
        return None
    key = " ".join(str(raw).strip().upper().split())
    return _LEVEL_ALIASES.get(key)


def _normalize_course(subject_raw, level_raw, grade_raw) -> dict | None:
    subject_id = normalize_subject_code(subject_raw)
    level = normalize_level(level_raw)
    try:
        grade = int(grade_raw)
    except (TypeError, ValueError):
        return None
    if subject_id is None or level is None:
        return None
    return {"subject_id": subject_id, "level": level, "grade": grade}


def normalize_courses_input(raw, subject_codes: set) -> dict:
    """
    Normalizes a candidate's courses, given either as a
    comma/newline/semicolon-separated 'SUBJECT:LEVEL:GRADE' string or as a
    list of {"subject_id", "level", "grade"} dicts.

    Returns:
      {
        "valid":          [{"subject_id": "MATH-AA", "level": "HL", "grade": 6}],
        "invalid":        ["asdf"],          # failed to parse
        "not_in_catalog": ["XYZ-AB"]         # parsed but unknown subject
      }

    Grade bounds are not checked here; see validators.validate_candidate_profile.
    """
    valid: list[dict] = []
    invalid: list[str] = []
    not_in_catalog: list[str] = []
    seen: set[str] = set()

    if raw is None:
        return {"valid": valid, "invalid": invalid, "not_in_catalog": not_in_catalog}

    entries: list[tuple[str, dict | None]] = []
    if isinstance(raw, str):
        for token in re.split(r'[,\n;]+', raw):
            token = token.strip()
            if not token:
                continue
            m = COURSE_TOKEN.match(token)
            course = _normalize_course(*m.groups()) if m else None
            entries.append((token, course))
    else:
        for item in raw:
            if not isinstance(item, dict):
                entries.append((str(item), None))
                continue
            course = _normalize_course(
                item.get("subject_id"), item.get("level"), item.get("grade")
            )
            label = f"{item.get('subject_id')}:{item.get('level')}:{item.get('grade')}"
            entries.append((label, course))

    for label, course in entries:
        if course is None:
            if label not in seen:
                invalid.append(label)
                seen.add(label)
            continue
        key = f"{course['subject_id']}:{course['level']}:{course['grade']}"
        if key in seen:
            continue  # deduplicate silently
        seen.add(key)
        if course["subject_id"] not in subject_codes:
            not_in_catalog.append(course["subject_id"])
        else:
            valid.append(course)

    return {"valid": valid, "invalid": invalid, "not_in_catalog": not_in_catalog}
