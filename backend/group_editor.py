"""
Authoring-time edits to a program's requirement list.

Every operation takes the current flat list and returns a new list of new
record dicts; the input list and its records are never modified. Operations
keep OR-groups at two or more members: whenever an edit leaves a group with a
single record, that record is demoted to a stand-alone requirement.

Unknown requirement ids are a no-op (a copy of the input comes back), so an
authoring client can safely retry an edit.
"""

from requirements import (
    DEFAULT_LEVEL,
    DEFAULT_MIN_GRADE,
    EDITABLE_FIELDS,
    make_requirement,
    new_id,
)
from or_groups import find_singleton_groups, group_labels, resolve_groups


def _copy(records: list[dict]) -> list[dict]:
    return [dict(r) for r in records]


def _find(records: list[dict], requirement_id: str) -> dict | None:
    return next((r for r in records if r.get("id") == requirement_id), None)


def _dissolve_if_single(records: list[dict], or_group_id: str) -> None:
    """Demote the last remaining member of or_group_id, in place on copies."""
    members = [r for r in records if r.get("or_group_id") == or_group_id]
    if len(members) == 1:
        members[0]["or_group_id"] = None


def _check_new_id(records: list[dict], requirement_id: str | None) -> None:
    if requirement_id is not None and _find(records, requirement_id) is not None:
        raise ValueError(f"Requirement id {requirement_id!r} is already in use.")


def _check_new_group_id(records: list[dict], group_id: str | None) -> None:
    if group_id and any(r.get("or_group_id") == group_id for r in records):
        raise ValueError(f"OR-group id {group_id!r} is already in use.")


def add_requirement(
    records: list[dict],
    subject_id: str = "",
    required_level: str = DEFAULT_LEVEL,
    min_grade: int = DEFAULT_MIN_GRADE,
    is_critical: bool = False,
    requirement_id: str | None = None,
) -> list[dict]:
    """Append a new stand-alone requirement. Raises ValueError if requirement_id is taken."""
    _check_new_id(records, requirement_id)
    out = _copy(records)
    out.append(make_requirement(
        subject_id=subject_id,
        required_level=required_level,
        min_grade=min_grade,
        is_critical=is_critical,
        requirement_id=requirement_id,
    ))
    return out


def add_alternative(
    records: list[dict],
    existing_id: str,
    requirement_id: str | None = None,
    group_id: str | None = None,
) -> list[dict]:
    """
    Add an OR alternative to an existing requirement.

    A stand-alone requirement first joins a fresh group (group_id, or a minted
    one); a grouped requirement keeps its group and group_id is ignored. The
    new record shares that group, inherits the existing record's criticality
    and starts with a blank subject and default level/grade.

    Raises ValueError if requirement_id is taken, or if group_id already
    names another group.
    """
    out = _copy(records)
    existing = _find(out, existing_id)
    if existing is None:
        return out
    _check_new_id(out, requirement_id)
    if not existing.get("or_group_id"):
        _check_new_group_id(out, group_id)

    or_group_id = existing.get("or_group_id") or group_id or new_id()
    existing["or_group_id"] = or_group_id
    out.append(make_requirement(
        is_critical=bool(existing.get("is_critical")),
        or_group_id=or_group_id,
        requirement_id=requirement_id,
    ))
    return out


def remove_from_group(records: list[dict], requirement_id: str) -> list[dict]:
    """Make a grouped requirement stand-alone; dissolve the group if one member remains."""
    out = _copy(records)
    record = _find(out, requirement_id)
    if record is None or not record.get("or_group_id"):
        return out

    or_group_id = record["or_group_id"]
    record["or_group_id"] = None
    _dissolve_if_single(out, or_group_id)
    return out


def delete_requirement(records: list[dict], requirement_id: str) -> list[dict]:
    """Remove a requirement; a group left with one member dissolves."""
    touched = {
        r["or_group_id"] for r in records
        if r.get("id") == requirement_id and r.get("or_group_id")
    }
    out = [dict(r) for r in records if r.get("id") != requirement_id]
    for or_group_id in touched:
        _dissolve_if_single(out, or_group_id)
    return out


def update_requirement(records: list[dict], requirement_id: str, **updates) -> list[dict]:
    """
    Edit subject, level, grade or criticality of one requirement.

    Raises ValueError for any other field; ids and grouping only change
    through the operations above.
    """
    rejected = set(updates) - EDITABLE_FIELDS
    if rejected:
        raise ValueError(
            f"Cannot update field(s) {sorted(rejected)}; editable fields are {sorted(EDITABLE_FIELDS)}."
        )
    out = _copy(records)
    record = _find(out, requirement_id)
    if record is None:
        return out
    record.update(updates)
    if "is_critical" in updates:
        record["is_critical"] = bool(updates["is_critical"])
    return out


def normalize_groups(records: list[dict]) -> list[dict]:
    """Demote the sole member of every single-member OR-group."""
    out = _copy(records)
    stale = set(find_singleton_groups(out))
    for record in out:
        if record.get("or_group_id") in stale:
            record["or_group_id"] = None
    return out


def records_for_save(records: list[dict]) -> list[dict]:
    """
    Drop requirements that never had a subject picked, then repair groups.

    Dropping an unfinished alternative can leave its group with one member,
    so groups are normalized after the filter, not before.
    """
    complete = [r for r in records if str(r.get("subject_id") or "").strip()]
    return normalize_groups(complete)


def _apply_update(records: list[dict], requirement_id: str, updates: dict | None = None) -> list[dict]:
    return update_requirement(records, requirement_id, **(updates or {}))


_OPERATIONS = {
    "add_requirement": add_requirement,
    "add_alternative": add_alternative,
    "remove_from_group": remove_from_group,
    "delete_requirement": delete_requirement,
    "update_requirement": _apply_update,
}


def apply_operation(records: list[dict], operation: str, params: dict | None = None) -> list[dict]:
    """Run a named edit operation with keyword params. Raises ValueError on bad input."""
    fn = _OPERATIONS.get(str(operation or "").strip())
    if fn is None:
        raise ValueError(f"Unknown operation {operation!r}; expected one of {sorted(_OPERATIONS)}.")
    try:
        return fn(records, **(params or {}))
    except TypeError as exc:
        raise ValueError(f"Invalid parameters for {operation}: {exc}") from exc


class AuthoringSession:
    """One editor's requirement list, with undo/redo over whole-list snapshots."""

    def __init__(self, records: list[dict] | None = None, max_history: int = 100):
        self.max_history = max(1, int(max_history))
        self._records: list[dict] = _copy(records or [])
        self._undo: list[list[dict]] = []
        self._redo: list[list[dict]] = []

    @property
    def records(self) -> list[dict]:
        return _copy(self._records)

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo) > 0

    def _commit(self, new_records: list[dict]) -> bool:
        # No-op edits do not create history entries.
        if new_records == self._records:
            return False
        self._undo.append(self._records)
        if len(self._undo) > self.max_history:
            self._undo.pop(0)
        self._redo.clear()
        self._records = new_records
        return True

    def add_requirement(self, **fields) -> str:
        """Append a stand-alone requirement and return its id."""
        self._commit(add_requirement(self._records, **fields))
        return self._records[-1]["id"]

    def add_alternative(self, existing_id: str, **kwargs) -> str | None:
        """Add an alternative to existing_id; returns the new id, or None if existing_id is unknown."""
        if self._commit(add_alternative(self._records, existing_id, **kwargs)):
            return self._records[-1]["id"]
        return None

    def remove_from_group(self, requirement_id: str) -> bool:
        return self._commit(remove_from_group(self._records, requirement_id))

    def delete_requirement(self, requirement_id: str) -> bool:
        return self._commit(delete_requirement(self._records, requirement_id))

    def update_requirement(self, requirement_id: str, **updates) -> bool:
        return self._commit(update_requirement(self._records, requirement_id, **updates))

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._records)
        self._records = self._undo.pop()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._records)
        self._records = self._redo.pop()
        return True

    def groups(self) -> list[dict]:
        return resolve_groups(self._records)

    def labels(self) -> dict[str, str]:
        return group_labels(self._records)

    def for_save(self) -> list[dict]:
        return records_for_save(self._records)
