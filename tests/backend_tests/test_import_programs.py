"""
Tests for the bulk importer (scripts/import_programs.py).
"""

import pandas as pd
import pytest

from import_programs import import_programs, main, read_program_rows
from data_loader import load_data


CATALOG = {"CHEM", "BIO", "PHYS", "MATH-AA", "MATH-AI"}


def _rows(*rows):
    """Each row: (program_id, program_name, min_ib_points, course_requirements)."""
    return pd.DataFrame(rows, columns=["program_id", "program_name", "min_ib_points", "course_requirements"])


class TestImportPrograms:
    def test_program_and_rows(self):
        result = import_programs(
            _rows(("med", "Medicine", "36", "(CHEM:HL:5:critical|BIO:HL:5:critical);PHYS:SL:4")),
            CATALOG,
        )
        assert result["errors"] == []
        programs = result["programs_df"]
        assert programs.to_dict("records") == [
            {"program_id": "MED", "program_name": "Medicine", "min_ib_points": 36}
        ]
        reqs = result["requirements_df"]
        assert reqs["requirement_id"].tolist() == ["MED-1", "MED-2", "MED-3"]
        assert reqs["or_group_id"].tolist() == ["MED-G1", "MED-G1", ""]
        assert reqs["is_critical"].tolist() == [True, True, False]
        assert reqs["sort_order"].tolist() == [1, 2, 3]

    def test_groups_numbered_per_program(self):
        result = import_programs(
            _rows(("ENG", "Engineering", "34", "(MATH-AA:HL:6|MATH-AI:HL:7);(CHEM:HL:5|PHYS:HL:5)")),
            CATALOG,
        )
        assert result["requirements_df"]["or_group_id"].tolist() == ["ENG-G1", "ENG-G1", "ENG-G2", "ENG-G2"]

    def test_blank_points_and_requirements(self):
        result = import_programs(_rows(("OPEN", "Open", "", "none")), CATALOG)
        assert result["errors"] == []
        assert result["programs_df"]["min_ib_points"].tolist() == [""]
        assert len(result["requirements_df"]) == 0

    def test_row_with_errors_skipped_and_reported(self):
        result = import_programs(
            _rows(
                ("MED", "Medicine", "36", "CHEM:HL:9"),
                ("ECON", "Economics", "32", "MATH-AA:SL:5"),
            ),
            CATALOG,
        )
        assert result["programs_df"]["program_id"].tolist() == ["ECON"]
        assert len(result["errors"]) == 1
        assert result["errors"][0].startswith("Row 2 (MED): Invalid grade")

    @pytest.mark.parametrize("points, message", [("abc", "not a number"), ("36.5", "whole number"), ("50", "between")])
    def test_bad_points(self, points, message):
        result = import_programs(_rows(("MED", "Medicine", points, "")), CATALOG)
        assert len(result["programs_df"]) == 0
        assert message in result["errors"][0]

    def test_missing_and_duplicate_program_ids(self):
        result = import_programs(
            _rows(("", "Nameless", "30", ""), ("LA", "Liberal Arts", "28", ""), ("la", "Again", "28", "")),
            CATALOG,
        )
        assert result["errors"] == ["Row 2: missing program_id.", "Row 4: duplicate program_id 'LA'."]

    def test_duplicate_after_failed_row_still_reported(self):
        result = import_programs(
            _rows(("MED", "Medicine", "36", "CHEM:HL:9"), ("MED", "Medicine", "36", "CHEM:HL:5")),
            CATALOG,
        )
        assert len(result["programs_df"]) == 0
        assert result["errors"][-1] == "Row 3: duplicate program_id 'MED'."

    def test_missing_program_id_column(self):
        with pytest.raises(ValueError):
            import_programs(pd.DataFrame([{"name": "x"}]), CATALOG)


class TestCli:
    def test_round_trip_through_loader(self, tmp_path):
        src = tmp_path / "seed.csv"
        src.write_text(
            "Program_ID,Program_Name,Min_IB_Points,Course_Requirements\n"
            "MED,Medicine,36,\"(CHEM:HL:5:critical|BIO:HL:5:critical);PHYS:SL:4\"\n"
        )
        out_dir = tmp_path / "out"
        subjects = tmp_path / "subjects.csv"
        subjects.write_text("subject_id,subject_name\nCHEM,Chemistry\nBIO,Biology\nPHYS,Physics\n")

        assert main(["--src", str(src), "--out", str(out_dir), "--subjects", str(subjects)]) == 0

        (out_dir / "subjects.csv").write_text(subjects.read_text())
        data = load_data(str(out_dir))
        med = data["requirement_sets"]["MED"]
        assert med["min_ib_points"] == 36
        assert [r["or_group_id"] for r in med["requirements"]] == ["MED-G1", "MED-G1", None]

    def test_read_program_rows_lowercases_headers(self, tmp_path):
        src = tmp_path / "seed.csv"
        src.write_text("Program_ID,Course_Requirements\nMED,\n")
        df = read_program_rows(str(src))
        assert list(df.columns) == ["program_id", "course_requirements"]
        assert df.iloc[0]["course_requirements"] == ""

    def test_missing_source(self, tmp_path):
        assert main(["--src", str(tmp_path / "nope.csv"), "--out", str(tmp_path)]) == 1
