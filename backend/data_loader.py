import os
import pandas as pd
from normalizer import normalize_level, normalize_subject_code
from or_groups import find_singleton_groups
from validators import validate_min_ib_points, validate_requirement


REQUIRED_TABLES = ("subjects", "programs", "program_requirements")

_BOOL_TRUTHY = {"true", "1", "yes", "y", "critical"}


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of source format.

    Handles: Python bool, Excel int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n, critical). NaN → False.
    """
    def _coerce(x):
        if pd.isna(x):
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    return df


def _optional_int(value) -> int | None:
    num = pd.to_numeric(value, errors="coerce")
    if pd.isna(num):
        return None
    return int(num)


def _optional_int_col(series: pd.Series) -> pd.Series:
    # Object dtype keeps Python ints next to None instead of float NaN.
    return pd.Series([_optional_int(v) for v in series], index=series.index, dtype=object)


def _read_tables(data_path: str) -> dict[str, pd.DataFrame]:
    """Read the three tables from a CSV directory or an xlsx workbook."""
    tables: dict[str, pd.DataFrame] = {}
    if os.path.isdir(data_path):
        for name in REQUIRED_TABLES:
            path = os.path.join(data_path, f"{name}.csv")
            if not os.path.isfile(path):
                raise FileNotFoundError(f"Missing {name}.csv in {data_path}")
            tables[name] = pd.read_csv(path, dtype=str).fillna("")
        return tables

    xl = pd.ExcelFile(data_path)
    missing = [name for name in REQUIRED_TABLES if name not in xl.sheet_names]
    if missing:
        raise ValueError(f"Workbook {data_path} is missing sheet(s): {missing}")
    for name in REQUIRED_TABLES:
        tables[name] = xl.parse(name, dtype=str).fillna("")
    return tables


def _normalize_subjects_df(subjects_df: pd.DataFrame) -> pd.DataFrame:
    subjects_df = subjects_df.copy()
    if "subject_id" not in subjects_df.columns and "course_code" in subjects_df.columns:
        subjects_df = subjects_df.rename(columns={"course_code": "subject_id"})
    if "subject_id" not in subjects_df.columns:
        raise ValueError("subjects table has no subject_id column.")
    if "subject_name" not in subjects_df.columns:
        subjects_df["subject_name"] = subjects_df["subject_id"]

    subjects_df["subject_id"] = subjects_df["subject_id"].apply(
        lambda s: normalize_subject_code(s) or str(s).strip().upper()
    )
    subjects_df["subject_name"] = subjects_df["subject_name"].astype(str).str.strip()
    subjects_df = subjects_df[subjects_df["subject_id"] != ""]
    return subjects_df.drop_duplicates(subset=["subject_id"]).reset_index(drop=True)


def _normalize_programs_df(programs_df: pd.DataFrame) -> pd.DataFrame:
    programs_df = programs_df.copy()
    rename_map = {}
    if "min_ib_points" not in programs_df.columns and "min_points" in programs_df.columns:
        rename_map["min_points"] = "min_ib_points"
    if "program_name" not in programs_df.columns and "name" in programs_df.columns:
        rename_map["name"] = "program_name"
    if rename_map:
        programs_df = programs_df.rename(columns=rename_map)

    if "program_id" not in programs_df.columns:
        raise ValueError("programs table has no program_id column.")
    if "program_name" not in programs_df.columns:
        programs_df["program_name"] = programs_df["program_id"]
    if "min_ib_points" not in programs_df.columns:
        programs_df["min_ib_points"] = ""

    programs_df["program_id"] = programs_df["program_id"].astype(str).str.strip().str.upper()
    programs_df["program_name"] = programs_df["program_name"].astype(str).str.strip()
    programs_df["min_ib_points"] = _optional_int_col(programs_df["min_ib_points"])
    programs_df = programs_df[programs_df["program_id"] != ""]
    return programs_df.drop_duplicates(subset=["program_id"]).reset_index(drop=True)


def _normalize_requirements_df(requirements_df: pd.DataFrame) -> pd.DataFrame:
    """Normalize flat requirement rows. Invalid values are kept for the publish gate to report."""
    requirements_df = requirements_df.copy()

    rename_map = {}
    for alias, canonical in (
        ("ib_course_id", "subject_id"),
        ("course_code", "subject_id"),
        ("id", "requirement_id"),
        ("level", "required_level"),
    ):
        if canonical not in requirements_df.columns and alias in requirements_df.columns:
            rename_map[alias] = canonical
    if rename_map:
        requirements_df = requirements_df.rename(columns=rename_map)

    for col in ("program_id", "subject_id", "required_level", "min_grade"):
        if col not in requirements_df.columns:
            raise ValueError(f"program_requirements table has no {col} column.")
    for col, default in (("requirement_id", ""), ("is_critical", False), ("or_group_id", ""), ("sort_order", "")):
        if col not in requirements_df.columns:
            requirements_df[col] = default

    requirements_df["program_id"] = requirements_df["program_id"].astype(str).str.strip().str.upper()
    requirements_df["subject_id"] = requirements_df["subject_id"].apply(
        lambda s: normalize_subject_code(s) or str(s).strip().upper()
    )
    requirements_df["required_level"] = requirements_df["required_level"].apply(
        lambda v: normalize_level(v) or str(v).strip().upper()
    )
    requirements_df["min_grade"] = _optional_int_col(requirements_df["min_grade"])
    requirements_df = _safe_bool_col(requirements_df, "is_critical")
    requirements_df["or_group_id"] = requirements_df["or_group_id"].fillna("").astype(str).str.strip()
    requirements_df["requirement_id"] = requirements_df["requirement_id"].fillna("").astype(str).str.strip()

    # Rows without an id get a stable positional one: "<PROGRAM>-<n>".
    positions = requirements_df.groupby("program_id").cumcount() + 1
    missing_id = requirements_df["requirement_id"] == ""
    requirements_df.loc[missing_id, "requirement_id"] = (
        requirements_df.loc[missing_id, "program_id"] + "-" + positions[missing_id].astype(str)
    )

    # Keep file order unless an explicit sort_order is given.
    requirements_df["_row"] = range(len(requirements_df))
    requirements_df["_sort"] = pd.to_numeric(requirements_df["sort_order"], errors="coerce").fillna(10**9)
    requirements_df = requirements_df.sort_values(["_sort", "_row"], kind="stable")
    return requirements_df.drop(columns=["_row", "_sort"]).reset_index(drop=True)


def _row_to_record(row) -> dict:
    return {
        "id": row["requirement_id"],
        "subject_id": row["subject_id"],
        "required_level": row["required_level"],
        "min_grade": row["min_grade"],
        "is_critical": bool(row["is_critical"]),
        "or_group_id": row["or_group_id"] or None,
    }


def build_requirement_sets(programs_df: pd.DataFrame, requirements_df: pd.DataFrame) -> dict:
    """
    program_id → {"program_id", "program_name", "min_ib_points", "requirements": [record, ...]}.

    Rows that fail record validation are skipped with a warning; the
    evaluator only ever sees well-formed records.
    """
    by_program: dict[str, list[dict]] = {}
    skipped: list[str] = []
    for _, row in requirements_df.iterrows():
        record = _row_to_record(row)
        if validate_requirement(record):
            skipped.append(record["id"])
            continue
        by_program.setdefault(row["program_id"], []).append(record)

    if skipped:
        print(f"[WARN] {len(skipped)} requirement row(s) skipped for invalid level/grade/subject: {sorted(skipped)}")

    sets: dict[str, dict] = {}
    for _, prow in programs_df.iterrows():
        pid = prow["program_id"]
        sets[pid] = {
            "program_id": pid,
            "program_name": prow["program_name"],
            "min_ib_points": prow["min_ib_points"],
            "requirements": by_program.get(pid, []),
        }
    return sets


def load_data(data_path: str) -> dict:
    """Load subjects, programs and flat requirement rows. Raises on file/schema errors."""
    tables = _read_tables(data_path)
    subjects_df = _normalize_subjects_df(tables["subjects"])
    programs_df = _normalize_programs_df(tables["programs"])
    requirements_df = _normalize_requirements_df(tables["program_requirements"])

    subject_codes = set(subjects_df["subject_id"].tolist())
    program_ids = set(programs_df["program_id"].tolist())

    # ── Startup data integrity checks ──────────────────────────────────────
    req_subjects = set(requirements_df["subject_id"].tolist())
    orphaned = req_subjects - subject_codes
    if orphaned:
        print(f"[WARN] {len(orphaned)} subject(s) in program_requirements not found in subjects: {sorted(orphaned)}")

    req_programs = set(requirements_df["program_id"].tolist())
    orphaned_programs = req_programs - program_ids
    if orphaned_programs:
        print(f"[WARN] {len(orphaned_programs)} program_id(s) in program_requirements not found in programs: {sorted(orphaned_programs)}")

    for _, prow in programs_df.iterrows():
        error = validate_min_ib_points(prow["min_ib_points"])
        if error:
            print(f"[WARN] Program '{prow['program_id']}': {error}")

    requirement_sets = build_requirement_sets(programs_df, requirements_df)

    for pid, rs in requirement_sets.items():
        singletons = find_singleton_groups(rs["requirements"])
        if singletons:
            print(
                f"[WARN] Program '{pid}' has {len(singletons)} single-member OR-group(s); "
                f"treated as stand-alone: {singletons}"
            )

    print(f"[INFO] Loaded {len(requirement_sets)} program(s), {len(requirements_df)} requirement row(s)")

    return {
        "subjects_df": subjects_df,
        "programs_df": programs_df,
        "requirements_df": requirements_df,
        "subject_codes": subject_codes,
        "requirement_sets": requirement_sets,
    }
