import re
import pandas as pd
from normalizer import normalize_subject_code, normalize_level
from requirements import MIN_GRADE, MAX_GRADE, make_requirement, new_id
from or_groups import group_records, resolve_groups

# Top-level requirement separator; semicolons inside (...) belong to the group.
GROUP_RE = re.compile(r'^\((?P<inner>.*)\)$', re.DOTALL)
ALT_SPLIT = re.compile(r'\s*\|\s*')

NONE_VALUES = {"none", "n/a", "nan", ""}
CRITICAL_FLAGS = {"critical", "c", "required"}


def _split_segments(notation: str) -> list[str]:
    """Split on ';' outside parentheses."""
    segments: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in notation:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == ";" and depth == 0:
            seg = "".join(current).strip()
            if seg:
                segments.append(seg)
            current = []
        else:
            current.append(ch)
    seg = "".join(current).strip()
    if seg:
        segments.append(seg)
    return segments


def _suggest(code: str, subject_codes: set[str]) -> str:
    similar = sorted(c for c in subject_codes if code in c or c[:3] in code)
    if not similar:
        return ""
    return f" Did you mean: {', '.join(similar[:3])}?"


def parse_requirement_token(
    token: str,
    subject_codes: set[str] | None = None,
    or_group_id: str | None = None,
) -> tuple[dict | None, str | None]:
    """
    Parse CODE:LEVEL:GRADE[:critical] into a requirement record.

    Returns (record, None) on success or (None, error_message).
    subject_codes=None skips the catalog check.
    """
    parts = [p.strip() for p in str(token).split(":")]
    if len(parts) < 3 or len(parts) > 4:
        return None, f'Invalid format "{token}". Expected CODE:LEVEL:GRADE[:critical]'

    code_raw, level_raw, grade_raw = parts[0], parts[1], parts[2]
    flag = parts[3].lower() if len(parts) == 4 else ""

    code = normalize_subject_code(code_raw)
    if code is None or (subject_codes is not None and code not in subject_codes):
        suggestion = _suggest(code or code_raw.upper(), subject_codes or set())
        return None, f'Course code "{code_raw}" not found.{suggestion}'

    level = normalize_level(level_raw)
    if level is None:
        return None, f'Invalid level "{level_raw}". Must be HL or SL.'

    try:
        grade = int(grade_raw)
    except ValueError:
        grade = None
    if grade is None or not (MIN_GRADE <= grade <= MAX_GRADE):
        return None, f'Invalid grade "{grade_raw}". Must be {MIN_GRADE}-{MAX_GRADE}.'

    if flag and flag not in CRITICAL_FLAGS:
        return None, f'Invalid flag "{parts[3]}" in "{token}". Only "critical" is supported.'

    return make_requirement(
        subject_id=code,
        required_level=level,
        min_grade=grade,
        is_critical=bool(flag),
        or_group_id=or_group_id,
    ), None


def parse_requirements(notation, subject_codes: set[str] | None = None) -> dict:
    """
    Parses the bulk-upload course requirements notation.

    Supported grammar:
      REQ[;REQ...]
      REQ = CODE:LEVEL:GRADE[:critical]            → stand-alone requirement
          | (CODE:LEVEL:GRADE[:critical]|...)      → OR-group (any one suffices)

    Examples:
      "MATH-AA:HL:5;PHYS:HL:5:critical"   → two stand-alone requirements
      "(MATH-AA:HL:5|MATH-AI:HL:6)"       → one OR-group
      "(CHEM:HL:5|BIO:HL:5);PHYS:SL:4"    → OR-group and a stand-alone

    Each parenthesised group gets one fresh or_group_id. If only one of its
    alternatives parses, that survivor is kept stand-alone so no
    single-member group is ever produced.

    Returns {"requirements": [record, ...], "errors": [str, ...]}.
    """
    if notation is None or (isinstance(notation, float) and pd.isna(notation)):
        return {"requirements": [], "errors": []}
    s = str(notation).strip()
    if s.lower() in NONE_VALUES:
        return {"requirements": [], "errors": []}

    requirements: list[dict] = []
    errors: list[str] = []

    for segment in _split_segments(s):
        m = GROUP_RE.match(segment)
        if not m:
            record, error = parse_requirement_token(segment, subject_codes)
            if error:
                errors.append(error)
            else:
                requirements.append(record)
            continue

        or_group_id = new_id()
        members: list[dict] = []
        for alt in ALT_SPLIT.split(m.group("inner").strip()):
            if not alt:
                continue
            record, error = parse_requirement_token(alt, subject_codes, or_group_id)
            if error:
                errors.append(error)
            else:
                members.append(record)
        if len(members) == 1:
            members[0]["or_group_id"] = None
        requirements.extend(members)

    return {"requirements": requirements, "errors": errors}


def _format_record(record: dict) -> str:
    token = f"{record.get('subject_id')}:{record.get('required_level')}:{record.get('min_grade')}"
    if record.get("is_critical"):
        token += ":critical"
    return token


def format_requirements(records: list[dict]) -> str:
    """Render records back to notation, groups in resolver order."""
    parts = []
    for group in resolve_groups(records):
        tokens = [_format_record(r) for r in group_records(group)]
        if group["type"] == "alternatives":
            parts.append("(" + "|".join(tokens) + ")")
        else:
            parts.append(tokens[0])
    return ";".join(parts)
