import uuid

# IB subject levels. Rank order matters: a higher rank satisfies any lower one.
LEVELS = ("HL", "SL")
LEVEL_RANK = {"SL": 0, "HL": 1}

# IB subject grading scale.
MIN_GRADE = 1
MAX_GRADE = 7

# IB Diploma total points scale (six subjects + up to 3 core bonus points).
MIN_IB_POINTS = 0
MAX_IB_POINTS = 45

# Defaults used by the authoring form when a blank requirement is added.
DEFAULT_LEVEL = "HL"
DEFAULT_MIN_GRADE = 5

# An OR-group with fewer members than this is not a group.
MIN_GROUP_SIZE = 2

# Fields an editor may change on an existing record. Grouping is structural
# and only changes through the group editor operations.
EDITABLE_FIELDS = {"subject_id", "required_level", "min_grade", "is_critical"}

PROGRAM_TYPES = ("full_requirements", "points_only", "subjects_only", "open")


def new_id() -> str:
    return str(uuid.uuid4())


def make_requirement(
    subject_id: str = "",
    required_level: str = DEFAULT_LEVEL,
    min_grade: int = DEFAULT_MIN_GRADE,
    is_critical: bool = False,
    or_group_id: str | None = None,
    requirement_id: str | None = None,
) -> dict:
    """Build a requirement record. Mints an id when none is supplied."""
    return {
        "id": requirement_id or new_id(),
        "subject_id": subject_id,
        "required_level": required_level,
        "min_grade": min_grade,
        "is_critical": bool(is_critical),
        "or_group_id": or_group_id or None,
    }


def level_satisfies(candidate_level: str | None, required_level: str) -> bool:
    """
    True when a subject taken at candidate_level meets a required_level.

    Levels compare by LEVEL_RANK, so HL satisfies an SL requirement and SL
    never satisfies an HL requirement. An unknown level satisfies nothing.
    """
    if candidate_level not in LEVEL_RANK or required_level not in LEVEL_RANK:
        return False
    return LEVEL_RANK[candidate_level] >= LEVEL_RANK[required_level]


def program_type(requirement_set: dict) -> str:
    """
    Classify a program by which kinds of requirement it carries:
      points + subjects -> full_requirements
      points only       -> points_only
      subjects only     -> subjects_only
      neither           -> open
    """
    has_points = requirement_set.get("min_ib_points") is not None
    has_subjects = len(requirement_set.get("requirements") or []) > 0
    if has_points and has_subjects:
        return "full_requirements"
    if has_points:
        return "points_only"
    if has_subjects:
        return "subjects_only"
    return "open"


def describe_requirement(record: dict) -> str:
    """'CHEM HL >= 5' style label used in warnings and notation previews."""
    subject = str(record.get("subject_id") or "?")
    return f"{subject} {record.get('required_level')} >= {record.get('min_grade')}"
