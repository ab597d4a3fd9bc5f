"""
Bulk-import program requirements from a spreadsheet → data/ CSV tables.

The source sheet has one row per program:

    program_id | program_name | min_ib_points | course_requirements

where course_requirements uses the bulk notation, e.g.
"(CHEM:HL:5:critical|BIO:HL:5:critical);PHYS:SL:4".

Rows with any error are skipped and reported by spreadsheet row number;
the rest are written to programs.csv and program_requirements.csv.

Usage:
    python scripts/import_programs.py --src programs.xlsx [--out DIR] [--subjects CSV]
"""

import argparse
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from requirement_parser import parse_requirements  # noqa: E402
from validators import validate_min_ib_points  # noqa: E402

PROGRAM_COLUMNS = ["program_id", "program_name", "min_ib_points"]
REQUIREMENT_COLUMNS = [
    "program_id",
    "requirement_id",
    "subject_id",
    "required_level",
    "min_grade",
    "is_critical",
    "or_group_id",
    "sort_order",
]


def read_program_rows(src: str) -> pd.DataFrame:
    """Read the source sheet (CSV, or the first sheet of an xlsx) as strings."""
    if src.lower().endswith((".xlsx", ".xls")):
        df = pd.read_excel(src, dtype=str)
    else:
        df = pd.read_csv(src, dtype=str)
    df = df.fillna("")
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _parse_min_points(raw: str) -> tuple[int | None, str | None]:
    raw = str(raw or "").strip()
    if not raw:
        return None, None
    try:
        value = int(float(raw))
    except (ValueError, OverflowError):
        return None, f'min_ib_points "{raw}" is not a number.'
    if value != float(raw):
        return None, f'min_ib_points "{raw}" is not a whole number.'
    return value, validate_min_ib_points(value)


def import_programs(rows_df: pd.DataFrame, subject_codes: set[str] | None = None) -> dict:
    """
    Parse program rows into flat tables.

    Requirement ids are "<PROGRAM>-<n>" and OR-group ids "<PROGRAM>-G<k>",
    numbered in notation order, so re-importing the same sheet is stable.

    Returns {"programs_df", "requirements_df", "errors": [str, ...]}.
    """
    if "program_id" not in rows_df.columns:
        raise ValueError("Source sheet has no program_id column.")

    program_rows: list[dict] = []
    requirement_rows: list[dict] = []
    errors: list[str] = []
    seen_programs: set[str] = set()

    for idx, row in rows_df.iterrows():
        row_num = idx + 2  # header is row 1
        pid = str(row.get("program_id", "")).strip().upper()
        if not pid:
            errors.append(f"Row {row_num}: missing program_id.")
            continue
        if pid in seen_programs:
            errors.append(f"Row {row_num}: duplicate program_id '{pid}'.")
            continue
        seen_programs.add(pid)

        row_errors: list[str] = []
        min_points, points_error = _parse_min_points(row.get("min_ib_points", ""))
        if points_error:
            row_errors.append(points_error)

        parsed = parse_requirements(row.get("course_requirements", ""), subject_codes)
        row_errors.extend(parsed["errors"])
        if row_errors:
            errors.extend(f"Row {row_num} ({pid}): {e}" for e in row_errors)
            continue

        program_rows.append({
            "program_id": pid,
            "program_name": str(row.get("program_name", "")).strip() or pid,
            "min_ib_points": "" if min_points is None else min_points,
        })

        group_ids: dict[str, str] = {}
        for n, record in enumerate(parsed["requirements"], start=1):
            gid = record["or_group_id"]
            if gid and gid not in group_ids:
                group_ids[gid] = f"{pid}-G{len(group_ids) + 1}"
            requirement_rows.append({
                "program_id": pid,
                "requirement_id": f"{pid}-{n}",
                "subject_id": record["subject_id"],
                "required_level": record["required_level"],
                "min_grade": record["min_grade"],
                "is_critical": record["is_critical"],
                "or_group_id": group_ids.get(gid, "") if gid else "",
                "sort_order": n,
            })

    return {
        "programs_df": pd.DataFrame(program_rows, columns=PROGRAM_COLUMNS),
        "requirements_df": pd.DataFrame(requirement_rows, columns=REQUIREMENT_COLUMNS),
        "errors": errors,
    }


def load_subject_codes(path: str) -> set[str] | None:
    if not path or not os.path.isfile(path):
        return None
    df = pd.read_csv(path, dtype=str).fillna("")
    return set(df["subject_id"].str.strip().tolist()) - {""}


def write_tables(out_dir: str, programs_df: pd.DataFrame, requirements_df: pd.DataFrame) -> None:
    os.makedirs(out_dir, exist_ok=True)
    programs_df.to_csv(os.path.join(out_dir, "programs.csv"), index=False)
    requirements_df.to_csv(os.path.join(out_dir, "program_requirements.csv"), index=False)


def main(args=None):
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser = argparse.ArgumentParser(description="Import program requirements from a spreadsheet.")
    parser.add_argument("--src", required=True, help="Source CSV or xlsx file")
    parser.add_argument(
        "--out",
        default=os.path.join(repo_root, "data"),
        help="Output directory for CSV files",
    )
    parser.add_argument(
        "--subjects",
        default=os.path.join(repo_root, "data", "subjects.csv"),
        help="Subjects CSV used to check subject codes (skipped if missing)",
    )
    opts = parser.parse_args(args)

    if not os.path.isfile(opts.src):
        print(f"[FATAL] Source file not found: {opts.src}")
        return 1

    subject_codes = load_subject_codes(opts.subjects)
    if subject_codes is None:
        print(f"[WARN] Subjects file not found ({opts.subjects}); subject codes will not be checked.")

    result = import_programs(read_program_rows(opts.src), subject_codes)
    for e in result["errors"]:
        print(f"[ERROR] {e}")

    write_tables(opts.out, result["programs_df"], result["requirements_df"])
    print(
        f"[OK]   {len(result['programs_df'])} program(s), "
        f"{len(result['requirements_df'])} requirement row(s) written to '{opts.out}'"
    )
    return 0 if not result["errors"] else 1


if __name__ == "__main__":
    sys.exit(main())
