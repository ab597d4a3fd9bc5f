import os
import sys
import time
import threading

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv

from normalizer import normalize_courses_input, normalize_subject_code
from requirements import program_type
from or_groups import group_labels, resolve_groups
from group_editor import apply_operation
from requirement_parser import format_requirements, parse_requirements
from eligibility import build_candidate_profile, evaluate_program, evaluate_programs
from validators import (
    find_group_inconsistencies,
    validate_candidate_profile,
    validate_requirement,
)
from data_loader import load_data

load_dotenv()

app = Flask(__name__)

VERSION = "1.0.0"

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".csv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['requirement_sets'])} programs from {DATA_PATH}")
except FileNotFoundError:
    # Stale DATA_PATH env var: fall back to the bundled data directory.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _data = load_data(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_data['requirement_sets'])} programs from {DATA_PATH}")
    else:
        print(f"[FATAL] Data file not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload requirement data when DATA_PATH changes on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {len(new_data['requirement_sets'])} programs from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# -- Error helpers -----------------------------------------------------------
def _error(error_code: str, message: str, status: int, **extra):
    body = {"error": {"error_code": error_code, "message": message}}
    body["error"].update(extra)
    return jsonify(body), status


def _unknown_program_error(program_id: str):
    return _error("PROGRAM_NOT_FOUND", f"Program '{program_id}' not found.", 404)


# -- Input validation ------------------------------------------------------
def _candidate_from_body(body):
    """Returns (profile, None) on success, (None, error_response) on invalid input."""
    raw_points = body.get("total_points")
    try:
        total_points = int(raw_points)
        if isinstance(raw_points, bool):
            raise ValueError
    except (TypeError, ValueError):
        return None, _error("INVALID_INPUT", "total_points must be an integer between 0 and 45.", 400)

    raw_courses = body.get("courses")
    if raw_courses is not None and not isinstance(raw_courses, (str, list)):
        return None, _error("INVALID_INPUT", "courses must be a string or a list.", 400)

    courses = normalize_courses_input(raw_courses, _data["subject_codes"])
    if courses["invalid"]:
        return None, _error(
            "INVALID_INPUT",
            "Courses must look like SUBJECT:LEVEL:GRADE (e.g. 'MATH-AA:HL:6').",
            400,
            invalid=courses["invalid"],
        )

    try:
        profile = build_candidate_profile(total_points, courses["valid"])
    except ValueError as exc:
        return None, _error("INVALID_INPUT", str(exc), 400)

    errors = validate_candidate_profile(profile)
    if errors:
        return None, _error("INVALID_INPUT", errors[0], 400, details=errors)
    profile["not_in_catalog"] = courses["not_in_catalog"]
    return profile, None


def _requirements_from_body(body):
    """Returns (records, None) or (None, error_response) for a posted requirement list."""
    records = body.get("requirements")
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        return None, _error("INVALID_INPUT", "requirements must be a list of requirement objects.", 400)
    return records, None


def _grouped_view(records: list[dict]) -> dict:
    return {
        "requirements": records,
        "groups": resolve_groups(records),
        "group_labels": group_labels(records),
        "inconsistencies": find_group_inconsistencies(records),
        "record_errors": [e for r in records for e in validate_requirement(r)],
    }


# ── Error handlers ──────────────────────────────────────────────────────────────
@app.errorhandler(404)
def handle_not_found(e):
    return _error("NOT_FOUND", "Resource not found.", 404)


@app.errorhandler(405)
def handle_method_not_allowed(e):
    return _error("METHOD_NOT_ALLOWED", f"Method {request.method} not allowed for {request.path}.", 405)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    return jsonify({
        "error": {
            "error_code": "SERVER_ERROR",
            "message": "An unexpected server error occurred.",
        },
    }), 500


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": VERSION,
        "programs_loaded": len(_data["requirement_sets"]),
    })


@app.route("/programs", methods=["GET"])
def get_programs():
    _refresh_data_if_needed()
    programs = []
    for rs in _data["requirement_sets"].values():
        programs.append({
            "program_id": rs["program_id"],
            "program_name": rs["program_name"],
            "program_type": program_type(rs),
            "min_ib_points": rs["min_ib_points"],
            "requirement_count": len(rs["requirements"]),
            "group_count": len(resolve_groups(rs["requirements"])),
        })
    return jsonify({"programs": programs})


@app.route("/programs/<program_id>/requirements", methods=["GET"])
def get_program_requirements(program_id):
    _refresh_data_if_needed()
    pid = str(program_id or "").strip().upper()
    rs = _data["requirement_sets"].get(pid)
    if rs is None:
        return _unknown_program_error(pid)
    response = _grouped_view(rs["requirements"])
    response.update({
        "program_id": rs["program_id"],
        "program_name": rs["program_name"],
        "min_ib_points": rs["min_ib_points"],
        "program_type": program_type(rs),
        "notation": format_requirements(rs["requirements"]),
    })
    return jsonify(response)


@app.route("/evaluate", methods=["POST"])
def evaluate_endpoint():
    """Eligibility verdict for one candidate against one program."""
    _refresh_data_if_needed()
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict) or not body:
        return _error("INVALID_INPUT", "Request body must be valid JSON.", 400)

    pid = str(body.get("program_id") or "").strip().upper()
    if not pid:
        return _error("INVALID_INPUT", "program_id is required.", 400)
    rs = _data["requirement_sets"].get(pid)
    if rs is None:
        return _unknown_program_error(pid)

    profile, error = _candidate_from_body(body)
    if error:
        return error

    verdict = evaluate_program(rs, profile)
    verdict["program_name"] = rs["program_name"]
    verdict["not_in_catalog"] = profile["not_in_catalog"]
    return jsonify(verdict)


@app.route("/match", methods=["POST"])
def match_endpoint():
    """Verdicts for one candidate against every loaded program."""
    _refresh_data_if_needed()
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict) or not body:
        return _error("INVALID_INPUT", "Request body must be valid JSON.", 400)

    profile, error = _candidate_from_body(body)
    if error:
        return error

    include_ineligible = bool(body.get("include_ineligible", False))
    requirement_sets = list(_data["requirement_sets"].values())
    verdicts = evaluate_programs(requirement_sets, profile, include_ineligible=include_ineligible)
    names = {rs["program_id"]: rs["program_name"] for rs in requirement_sets}
    for verdict in verdicts:
        verdict["program_name"] = names.get(verdict["program_id"], "")
    return jsonify({
        "eligible_count": sum(1 for v in verdicts if v["eligible"]),
        "evaluated_count": len(requirement_sets),
        "verdicts": verdicts,
        "not_in_catalog": profile["not_in_catalog"],
    })


@app.route("/requirements/apply", methods=["POST"])
def apply_requirement_operation():
    """Apply one authoring edit to a posted requirement list and return the regrouped result."""
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict) or not body:
        return _error("INVALID_INPUT", "Request body must be valid JSON.", 400)
    records, error = _requirements_from_body(body)
    if error:
        return error

    params = body.get("params") or {}
    if not isinstance(params, dict):
        return _error("INVALID_INPUT", "params must be an object.", 400)
    if "subject_id" in params and params["subject_id"]:
        params = dict(params)
        params["subject_id"] = normalize_subject_code(params["subject_id"]) or params["subject_id"]
    updates = params.get("updates")
    if isinstance(updates, dict) and updates.get("subject_id"):
        params = dict(params)
        params["updates"] = dict(updates)
        params["updates"]["subject_id"] = normalize_subject_code(updates["subject_id"]) or updates["subject_id"]

    try:
        new_records = apply_operation(records, body.get("operation"), params)
    except ValueError as exc:
        return _error("INVALID_INPUT", str(exc), 400)
    return jsonify(_grouped_view(new_records))


@app.route("/requirements/parse", methods=["POST"])
def parse_requirements_endpoint():
    """Parse bulk-upload notation against the loaded subject catalog."""
    _refresh_data_if_needed()
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict) or not body:
        return _error("INVALID_INPUT", "Request body must be valid JSON.", 400)
    parsed = parse_requirements(body.get("notation"), _data["subject_codes"])
    response = _grouped_view(parsed["requirements"])
    response["errors"] = parsed["errors"]
    return jsonify(response)


# -- Canonical API routes -----------------------------------------------
app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/programs", endpoint="api_programs", view_func=get_programs, methods=["GET"])
app.add_url_rule(
    "/api/programs/<program_id>/requirements",
    endpoint="api_program_requirements",
    view_func=get_program_requirements,
    methods=["GET"],
)
app.add_url_rule("/api/evaluate", endpoint="api_evaluate", view_func=evaluate_endpoint, methods=["POST"])
app.add_url_rule("/api/match", endpoint="api_match", view_func=match_endpoint, methods=["POST"])
app.add_url_rule(
    "/api/requirements/apply",
    endpoint="api_requirements_apply",
    view_func=apply_requirement_operation,
    methods=["POST"],
)
app.add_url_rule(
    "/api/requirements/parse",
    endpoint="api_requirements_parse",
    view_func=parse_requirements_endpoint,
    methods=["POST"],
)


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return _error("NOT_FOUND", f"/api/{rest} not found", 404)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
