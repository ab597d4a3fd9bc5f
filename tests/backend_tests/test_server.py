"""
HTTP adapter tests against the bundled data/ CSVs.

Covers:
- GET /health, /programs, /programs/<id>/requirements
- POST /evaluate and /match verdicts, including the medicine scenarios
- POST /requirements/apply and /requirements/parse
- Error envelope, security headers and /api aliases
"""

import pytest
import server


MED_BIOLOGY = {"program_id": "MED", "total_points": 38, "courses": "BIO:HL:6"}


@pytest.fixture(scope="module")
def client():
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_body(self, client):
        data = client.get("/health").get_json()
        assert data["status"] == "ok"
        assert data["programs_loaded"] == 7
        assert "version" in data

    def test_api_alias(self, client):
        assert client.get("/api/health").status_code == 200


class TestSecurityHeaders:
    @pytest.mark.parametrize("path", ["/health", "/programs", "/api/unknown"])
    def test_security_headers(self, client, path):
        resp = client.get(path)
        assert resp.headers.get("X-Frame-Options") == "DENY"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"
        assert resp.headers.get("Referrer-Policy") == "same-origin"


class TestPrograms:
    def test_program_types(self, client):
        programs = {p["program_id"]: p for p in client.get("/programs").get_json()["programs"]}
        assert programs["MED"]["program_type"] == "full_requirements"
        assert programs["LIB_ARTS"]["program_type"] == "points_only"
        assert programs["MUSIC_PERF"]["program_type"] == "subjects_only"
        assert programs["FOUNDATION"]["program_type"] == "open"
        assert programs["MED"]["requirement_count"] == 3
        assert programs["MED"]["group_count"] == 2

    def test_program_requirements(self, client):
        data = client.get("/programs/med/requirements").get_json()
        assert data["program_id"] == "MED"
        assert data["min_ib_points"] == 36
        assert data["notation"] == "(CHEM:HL:5:critical|BIO:HL:5:critical);PHYS:SL:4"
        assert [g["type"] for g in data["groups"]] == ["alternatives", "standalone"]
        assert data["group_labels"] == {"MED-SCI": "OR Group 1"}
        assert data["inconsistencies"] == []

    def test_unknown_program(self, client):
        resp = client.get("/programs/NOPE/requirements")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "PROGRAM_NOT_FOUND"


class TestEvaluate:
    def test_biology_route_eligible(self, client):
        resp = client.post("/evaluate", json=MED_BIOLOGY)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["eligible"] is True
        assert data["failed_critical_groups"] == []
        assert data["unmet_advisory_groups"] == ["MED-3"]
        assert data["warnings"] == ["Recommended but not required: PHYS SL >= 4"]
        assert data["program_name"] == "Medicine (MBBS)"

    def test_chemistry_sl_not_eligible(self, client):
        payload = {"program_id": "MED", "total_points": 38, "courses": "CHEM:SL:6"}
        data = client.post("/evaluate", json=payload).get_json()
        assert data["eligible"] is False
        assert data["failed_critical_groups"] == ["MED-SCI"]

    def test_courses_as_list(self, client):
        payload = {
            "program_id": "MED",
            "total_points": 38,
            "courses": [{"subject_id": "chem", "level": "higher", "grade": 6}],
        }
        data = client.post("/evaluate", json=payload).get_json()
        assert data["eligible"] is True

    def test_points_shortfall(self, client):
        payload = dict(MED_BIOLOGY, total_points=30)
        data = client.post("/evaluate", json=payload).get_json()
        assert data["eligible"] is False
        assert data["points_met"] is False
        assert data["points_shortfall"] == 6

    def test_subject_not_in_catalog_reported(self, client):
        payload = dict(MED_BIOLOGY, courses="BIO:HL:6, XYZ:HL:5")
        data = client.post("/evaluate", json=payload).get_json()
        assert data["eligible"] is True
        assert data["not_in_catalog"] == ["XYZ"]

    def test_unknown_program(self, client):
        resp = client.post("/evaluate", json=dict(MED_BIOLOGY, program_id="NOPE"))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "PROGRAM_NOT_FOUND"

    @pytest.mark.parametrize("payload", [
        {"program_id": "MED", "total_points": "lots", "courses": ""},
        {"program_id": "MED", "total_points": 50, "courses": ""},
        {"program_id": "MED", "total_points": True, "courses": ""},
        {"program_id": "MED", "total_points": 38, "courses": "garbage"},
        {"program_id": "MED", "total_points": 38, "courses": "CHEM:HL:9"},
        {"program_id": "MED", "total_points": 38, "courses": "CHEM:HL:6, CHEM:SL:5"},
        {"total_points": 38, "courses": "BIO:HL:6"},
    ])
    def test_invalid_input(self, client, payload):
        resp = client.post("/evaluate", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_non_json_body(self, client):
        resp = client.post("/evaluate", data="not json", content_type="text/plain")
        assert resp.status_code == 400

    def test_wrong_method(self, client):
        resp = client.get("/evaluate")
        assert resp.status_code == 405
        assert resp.get_json()["error"]["error_code"] == "METHOD_NOT_ALLOWED"


class TestMatch:
    CANDIDATE = {"total_points": 38, "courses": "BIO:HL:6, MATH-AA:HL:6, PHYS:HL:5"}

    def test_eligible_programs_only(self, client):
        data = client.post("/match", json=self.CANDIDATE).get_json()
        ids = [v["program_id"] for v in data["verdicts"]]
        assert "MUSIC_PERF" not in ids
        assert set(ids) == {"MED", "MECH_ENG", "ECON", "COMP_SCI", "LIB_ARTS", "FOUNDATION"}
        assert data["eligible_count"] == 6
        assert data["evaluated_count"] == 7

    def test_include_ineligible(self, client):
        payload = dict(self.CANDIDATE, include_ineligible=True)
        data = client.post("/match", json=payload).get_json()
        assert len(data["verdicts"]) == 7
        music = next(v for v in data["verdicts"] if v["program_id"] == "MUSIC_PERF")
        assert music["eligible"] is False
        assert music["program_name"] == "Music Performance"

    def test_advisory_warning_for_economics(self, client):
        data = client.post("/match", json=self.CANDIDATE).get_json()
        econ = next(v for v in data["verdicts"] if v["program_id"] == "ECON")
        assert econ["unmet_advisory_groups"] == ["ECON-2"]

    def test_invalid_candidate(self, client):
        resp = client.post("/match", json={"total_points": -1})
        assert resp.status_code == 400


class TestRequirementsApply:
    BASE = [{
        "id": "r1", "subject_id": "CHEM", "required_level": "HL",
        "min_grade": 5, "is_critical": True, "or_group_id": None,
    }]

    def test_add_alternative(self, client):
        payload = {"requirements": self.BASE, "operation": "add_alternative", "params": {"existing_id": "r1"}}
        data = client.post("/requirements/apply", json=payload).get_json()
        assert len(data["requirements"]) == 2
        gids = {r["or_group_id"] for r in data["requirements"]}
        assert len(gids) == 1 and None not in gids
        assert [g["type"] for g in data["groups"]] == ["alternatives"]
        assert list(data["group_labels"].values()) == ["OR Group 1"]

    def test_add_requirement_normalizes_subject(self, client):
        payload = {"requirements": [], "operation": "add_requirement", "params": {"subject_id": "math aa"}}
        data = client.post("/requirements/apply", json=payload).get_json()
        assert data["requirements"][0]["subject_id"] == "MATH-AA"

    def test_update_requirement(self, client):
        payload = {
            "requirements": self.BASE,
            "operation": "update_requirement",
            "params": {"requirement_id": "r1", "updates": {"min_grade": 6, "subject_id": "bio"}},
        }
        data = client.post("/requirements/apply", json=payload).get_json()
        assert data["requirements"][0]["min_grade"] == 6
        assert data["requirements"][0]["subject_id"] == "BIO"

    def test_structural_update_rejected(self, client):
        payload = {
            "requirements": self.BASE,
            "operation": "update_requirement",
            "params": {"requirement_id": "r1", "updates": {"or_group_id": "x"}},
        }
        resp = client.post("/requirements/apply", json=payload)
        assert resp.status_code == 400

    def test_unknown_operation(self, client):
        payload = {"requirements": self.BASE, "operation": "explode"}
        resp = client.post("/requirements/apply", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_requirements_must_be_list(self, client):
        resp = client.post("/requirements/apply", json={"requirements": "nope", "operation": "add_requirement"})
        assert resp.status_code == 400

    def test_out_of_range_update_reported(self, client):
        payload = {
            "requirements": self.BASE,
            "operation": "update_requirement",
            "params": {"requirement_id": "r1", "updates": {"min_grade": 99, "required_level": "XL"}},
        }
        resp = client.post("/requirements/apply", json=payload)
        assert resp.status_code == 200
        errors = resp.get_json()["record_errors"]
        assert any("min_grade 99" in e for e in errors)
        assert any("'XL'" in e for e in errors)

    def test_valid_edit_has_no_record_errors(self, client):
        payload = {"requirements": self.BASE, "operation": "update_requirement",
                   "params": {"requirement_id": "r1", "updates": {"min_grade": 6}}}
        assert client.post("/requirements/apply", json=payload).get_json()["record_errors"] == []

    def test_reused_id_rejected(self, client):
        payload = {"requirements": self.BASE, "operation": "add_requirement",
                   "params": {"subject_id": "BIO", "requirement_id": "r1"}}
        resp = client.post("/requirements/apply", json=payload)
        assert resp.status_code == 400
        assert "already in use" in resp.get_json()["error"]["message"]

    def test_api_alias(self, client):
        payload = {"requirements": self.BASE, "operation": "delete_requirement", "params": {"requirement_id": "r1"}}
        data = client.post("/api/requirements/apply", json=payload).get_json()
        assert data["requirements"] == []


class TestRequirementsParse:
    def test_parse_notation(self, client):
        resp = client.post("/requirements/parse", json={"notation": "(CHEM:HL:5|BIO:HL:5);PHYS:SL:4"})
        data = resp.get_json()
        assert data["errors"] == []
        assert data["record_errors"] == []
        assert len(data["requirements"]) == 3
        assert [g["type"] for g in data["groups"]] == ["alternatives", "standalone"]

    def test_unknown_subject_reported(self, client):
        data = client.post("/requirements/parse", json={"notation": "ZZZ:HL:5;BIO:HL:5"}).get_json()
        assert len(data["errors"]) == 1
        assert len(data["requirements"]) == 1


class TestApiCatchAll:
    def test_unknown_api_route(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "NOT_FOUND"

    def test_unknown_route(self, client):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "NOT_FOUND"
