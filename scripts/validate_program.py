"""
Publish gate validator for program requirement sets.

Checks data-quality rules that must pass before a program's requirements
are offered to candidates. Designed to be importable for tests and
runnable as a standalone CLI.

Usage:
    python scripts/validate_program.py --program MED
    python scripts/validate_program.py --program MED --path path/to/data
    python scripts/validate_program.py --all
"""

import argparse
import os
import sys

try:
    import pandas as pd
except ImportError as e:
    sys.exit(f"Missing dependency: {e}. Run: pip install pandas")

# Import backend helpers (add backend/ to path)
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from validators import (  # noqa: E402
    find_duplicate_ids,
    find_group_inconsistencies,
    validate_min_ib_points,
    validate_requirement,
)


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single program validation run."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Program '{self.program_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def _program_rows(program_id: str, requirements_df: pd.DataFrame) -> pd.DataFrame:
    if requirements_df is None or len(requirements_df) == 0:
        return pd.DataFrame(columns=["program_id"])
    ids = requirements_df["program_id"].astype(str).str.strip().str.upper()
    return requirements_df[ids == program_id.upper()]


_TRUTHY = {"true", "1", "yes", "y", "critical"}


def _as_int(value):
    """Whole numbers (int, numpy int, '5', 5.0) -> int; anything else unchanged for reporting."""
    num = pd.to_numeric(value, errors="coerce")
    if pd.isna(num) or num != int(num):
        return value
    return int(num)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    if value is None or pd.isna(value):
        return False
    return bool(value)


def _as_str(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _rows_to_records(rows: pd.DataFrame) -> list[dict]:
    records = []
    for _, row in rows.iterrows():
        records.append({
            "id": _as_str(row.get("requirement_id")),
            "subject_id": _as_str(row.get("subject_id")),
            "required_level": _as_str(row.get("required_level")).upper(),
            "min_grade": _as_int(row.get("min_grade")),
            "is_critical": _as_bool(row.get("is_critical", False)),
            "or_group_id": _as_str(row.get("or_group_id")) or None,
        })
    return records


def check_program_exists(program_id: str, programs_df: pd.DataFrame, result: ValidationResult) -> None:
    """Program must exist in the programs table."""
    if programs_df is None or len(programs_df) == 0:
        result.error("No programs table found or programs table is empty.")
        return
    program_ids = programs_df["program_id"].astype(str).str.strip().str.upper().tolist()
    if program_id.upper() not in program_ids:
        result.error(f"Program '{program_id}' not found in programs table.")


def check_min_points(program_id: str, programs_df: pd.DataFrame, result: ValidationResult) -> None:
    """min_ib_points must be empty or an integer in 0-45."""
    if programs_df is None or len(programs_df) == 0:
        return
    ids = programs_df["program_id"].astype(str).str.strip().str.upper()
    row = programs_df[ids == program_id.upper()]
    if len(row) == 0:
        return
    value = row.iloc[0].get("min_ib_points")
    if value is not None and pd.isna(value):
        value = None
    error = validate_min_ib_points(None if value is None else _as_int(value))
    if error:
        result.error(f"Program '{program_id}': {error}")


def check_requirements_present(
    program_id: str,
    programs_df: pd.DataFrame,
    requirements_df: pd.DataFrame,
    result: ValidationResult,
) -> None:
    """A program with no points threshold and no subject requirements admits everyone."""
    rows = _program_rows(program_id, requirements_df)
    if len(rows) > 0 or programs_df is None or len(programs_df) == 0:
        return
    ids = programs_df["program_id"].astype(str).str.strip().str.upper()
    row = programs_df[ids == program_id.upper()]
    if len(row) == 0:
        return
    value = row.iloc[0].get("min_ib_points")
    if value is None or pd.isna(value):
        result.warn(f"Program '{program_id}' has no points threshold and no subject requirements.")


def check_record_fields(program_id: str, requirements_df: pd.DataFrame, result: ValidationResult) -> None:
    """Every requirement row must have an id, a subject, a valid level and a grade in 1-7."""
    for record in _rows_to_records(_program_rows(program_id, requirements_df)):
        for msg in validate_requirement(record):
            result.error(msg)


def check_no_duplicate_ids(program_id: str, requirements_df: pd.DataFrame, result: ValidationResult) -> None:
    """Requirement ids must be unique within a program."""
    duplicates = find_duplicate_ids(_rows_to_records(_program_rows(program_id, requirements_df)))
    if duplicates:
        result.error(f"{len(duplicates)} duplicate requirement id(s) in program '{program_id}': {duplicates}")


def check_no_orphan_subjects(
    program_id: str,
    requirements_df: pd.DataFrame,
    subject_codes: set[str],
    result: ValidationResult,
) -> None:
    """All subject_ids in requirement rows must exist in the subjects table."""
    rows = _program_rows(program_id, requirements_df)
    if len(rows) == 0:
        return
    req_codes = set(rows["subject_id"].astype(str).str.strip().tolist()) - {""}
    orphans = req_codes - subject_codes
    if orphans:
        result.error(
            f"{len(orphans)} subject(s) in program_requirements not found in subjects table: {sorted(orphans)}"
        )


def check_group_consistency(program_id: str, requirements_df: pd.DataFrame, result: ValidationResult) -> None:
    """
    OR-groups must have at least two members. Mixed criticality inside a
    group is allowed (the group is critical) but warned about.
    """
    records = _rows_to_records(_program_rows(program_id, requirements_df))
    for issue in find_group_inconsistencies(records):
        if issue["issue"] == "single_member":
            result.error(
                f"OR-group '{issue['or_group_id']}' has a single member {issue['requirement_ids']}; "
                "it will be treated as stand-alone."
            )
        else:
            result.warn(
                f"OR-group '{issue['or_group_id']}' mixes critical and advisory members "
                f"{issue['requirement_ids']}; the whole group is treated as critical."
            )


def check_no_duplicate_subjects(program_id: str, requirements_df: pd.DataFrame, result: ValidationResult) -> None:
    """The same subject required twice outside one OR-group is usually an authoring slip."""
    records = _rows_to_records(_program_rows(program_id, requirements_df))
    seen: dict[str, str | None] = {}
    repeated: set[str] = set()
    for record in records:
        sid = record["subject_id"]
        if not sid:
            continue
        if sid in seen and (seen[sid] is None or seen[sid] != record["or_group_id"]):
            repeated.add(sid)
        seen.setdefault(sid, record["or_group_id"])
    if repeated:
        result.warn(f"Subject(s) required more than once in program '{program_id}': {sorted(repeated)}")


# ── Main validate function ────────────────────────────────────────────────────

def validate_program(
    program_id: str,
    programs_df: pd.DataFrame,
    requirements_df: pd.DataFrame,
    subject_codes: set[str],
) -> ValidationResult:
    """Run all publish gate checks for a program. Returns a ValidationResult."""
    result = ValidationResult(program_id)

    check_program_exists(program_id, programs_df, result)
    check_min_points(program_id, programs_df, result)
    check_requirements_present(program_id, programs_df, requirements_df, result)
    check_record_fields(program_id, requirements_df, result)
    check_no_duplicate_ids(program_id, requirements_df, result)
    check_no_orphan_subjects(program_id, requirements_df, subject_codes, result)
    check_group_consistency(program_id, requirements_df, result)
    check_no_duplicate_subjects(program_id, requirements_df, result)

    return result


# ── CLI entry point ───────────────────────────────────────────────────────────

def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate program requirement data before publishing.",
    )
    parser.add_argument("--program", type=str, help="Program ID to validate.")
    parser.add_argument("--all", action="store_true", help="Validate all programs in the dataset.")
    parser.add_argument(
        "--path", type=str,
        default=os.path.join(os.path.dirname(__file__), "..", "data"),
        help="Path to the data directory (CSV) or workbook (xlsx).",
    )
    opts = parser.parse_args(args)

    if not opts.program and not opts.all:
        parser.error("Provide --program PROGRAM_ID or --all.")

    from data_loader import load_data

    data = load_data(opts.path)

    if opts.all:
        program_ids = data["programs_df"]["program_id"].tolist()
        if not program_ids:
            print("[INFO] No programs found in dataset.")
            return 0
    else:
        program_ids = [opts.program.strip().upper()]

    all_passed = True
    for pid in program_ids:
        result = validate_program(
            pid,
            data["programs_df"],
            data["requirements_df"],
            data["subject_codes"],
        )
        print(result.summary())
        if not result.passed:
            all_passed = False

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
