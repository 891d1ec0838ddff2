import os
import sys
import time
import threading

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, Response, g, jsonify, request, session
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from csv_export import build_csv, combined_to_export_rows, users_to_export_rows
from data_loader import EXCLUSIONS_FILE, data_files_mtime, load_all_program_data
from exclusions import OVERRIDES_NAMESPACE, ExclusionResolver, OverrideStore
from models import Program, VisitType
from reports import program_report
from views import (
    EXCLUSION_FILTERS,
    PROGRAM_FILTERS,
    all_users,
    combined_states,
    combined_users,
    dashboard_stats,
    state_detail,
    state_grid,
)

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")


def _resolve_path(raw: str | None, default: str) -> str:
    if not raw:
        return default
    if not os.path.isabs(raw):
        return os.path.join(PROJECT_ROOT, raw)
    return raw


DATA_PATH = _resolve_path(os.environ.get("DATA_PATH"), _DEFAULT_DATA_PATH)
EXCLUSIONS_PATH = _resolve_path(
    os.environ.get("EXCLUSIONS_PATH"),
    os.path.join(DATA_PATH, EXCLUSIONS_FILE),
)
_data_lock = threading.Lock()
_data_mtime = None

_secret_key = os.environ.get("SECRET_KEY", "")
if not _secret_key:
    print("[WARN] SECRET_KEY not set; using an insecure development key.", file=sys.stderr)
    _secret_key = "resource-pool-viewer-dev"
app.secret_key = _secret_key


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_COOKIE_WARN_RATIO = 0.9


def _summarize(data: dict) -> str:
    parts = [f"{len(data.get(p, []))} {p.value} pools" for p in Program]
    exclusions = data.get("exclusions")
    if exclusions is not None:
        parts.append(f"{len(exclusions.state_exclusions)} state exclusions")
    return ", ".join(parts)


# ── Startup data load ──────────────────────────────────────────────────────────
# Missing or malformed files degrade to empty collections; never fatal.
_data = load_all_program_data(DATA_PATH, EXCLUSIONS_PATH)
_data_mtime = data_files_mtime(DATA_PATH, EXCLUSIONS_PATH)
print(f"[OK] Loaded {_summarize(_data)} from {DATA_PATH}")


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload the CSV/JSON data when files under DATA_PATH change on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = data_files_mtime(DATA_PATH, EXCLUSIONS_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = data_files_mtime(DATA_PATH, EXCLUSIONS_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_all_program_data(DATA_PATH, EXCLUSIONS_PATH)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {_summarize(new_data)} from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# ── Browser-held overrides ─────────────────────────────────────────────────────
class SessionOverrideStore(OverrideStore):
    """
    Keeps the override list in the signed session cookie, so it stays with
    the browser and is never written server-side.

    Browsers drop cookies over ~4 KB (Flask's MAX_COOKIE_SIZE), which loses
    the whole list; at roughly 23 bytes per compressed entry that is about
    170 overrides. save() warns once the cookie nears that size.
    """

    def __init__(self, key: str = OVERRIDES_NAMESPACE):
        self.key = key

    def load(self):
        return session.get(self.key)

    def save(self, entries: list[dict]) -> None:
        session[self.key] = entries
        session.modified = True
        self._warn_if_near_cookie_limit(len(entries))

    def _warn_if_near_cookie_limit(self, count: int) -> None:
        limit = app.config.get("MAX_COOKIE_SIZE") or 0
        serializer = app.session_interface.get_signing_serializer(app)
        if not limit or serializer is None:
            return
        size = len(serializer.dumps(dict(session)))
        if size >= limit * _COOKIE_WARN_RATIO:
            print(
                f"[WARN] Session cookie holds {count} exclusion overrides ({size} bytes, "
                f"limit {limit}); browsers drop larger cookies and the overrides with them.",
                file=sys.stderr,
            )


def _get_resolver() -> ExclusionResolver:
    resolver = getattr(g, "_exclusion_resolver", None)
    if resolver is None:
        resolver = ExclusionResolver(_data["exclusions"], SessionOverrideStore())
        g._exclusion_resolver = resolver
    return resolver


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


# -- Request helpers ---------------------------------------------------------
def _invalid_input(message: str):
    return jsonify({
        "mode": "error",
        "error": {"error_code": "INVALID_INPUT", "message": message},
    }), 400


def _unknown_program(raw):
    return jsonify({"error": f"Unknown program '{raw}'. Expected one of: HRT, TRT."}), 404


def _flag_arg(name: str) -> bool:
    return str(request.args.get(name, "")).strip().lower() in {"1", "true", "yes", "y"}


def _visit_type_arg():
    """Returns (visit_type, error_response)."""
    try:
        return VisitType.parse(request.args.get("visit_type")), None
    except ValueError as exc:
        return None, _invalid_input(str(exc))


def _serialize_row(row: dict) -> dict:
    out = dict(row)
    if "visit_type" in out:
        out["visit_type"] = out["visit_type"].value if out["visit_type"] else None
    return out


def _csv_response(rows: list[dict], filename: str):
    return Response(
        build_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _filename_slug(text: str) -> str:
    return "-".join(text.lower().split())


def _pools_by_program() -> dict:
    return {p: _data.get(p, []) for p in Program}


# -- Health endpoint --------------------------------------------------------
@app.route("/api/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "data_loaded": any(_data.get(p) for p in Program),
    })


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    print(f"[ERROR] Unhandled exception: {e!r}", file=sys.stderr)
    return jsonify({
        "mode": "error",
        "error": {
            "error_code": "SERVER_ERROR",
            "message": "An unexpected server error occurred.",
        },
    }), 500


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/api/programs", methods=["GET"])
def get_programs():
    """Dashboard headline stats for both programs."""
    _refresh_data_if_needed()
    resolver = _get_resolver()
    return jsonify({
        "programs": [
            {
                "program": program.value,
                **dashboard_stats(_data.get(program, []), resolver, program),
                "excluded_records": resolver.get_total_excluded_count(program),
            }
            for program in Program
        ],
    })


@app.route("/api/programs/<program>/pools", methods=["GET"])
def get_pools(program):
    _refresh_data_if_needed()
    prog = Program.from_param(program)
    if prog is None:
        return _unknown_program(program)
    return jsonify({
        "program": prog.value,
        "pools": [p.to_dict() for p in _data.get(prog, [])],
    })


@app.route("/api/programs/<program>/states", methods=["GET"])
def get_state_grid(program):
    _refresh_data_if_needed()
    prog = Program.from_param(program)
    if prog is None:
        return _unknown_program(program)
    return jsonify({
        "program": prog.value,
        "states": state_grid(_data.get(prog, []), _get_resolver(), prog, request.args.get("q", "")),
    })


def _state_detail_or_error(program, state):
    prog = Program.from_param(program)
    if prog is None:
        return None, _unknown_program(program)
    visit_type, err = _visit_type_arg()
    if err:
        return None, err
    detail = state_detail(
        _data.get(prog, []),
        _get_resolver(),
        prog,
        state,
        query=request.args.get("q", ""),
        show_excluded=_flag_arg("show_excluded"),
        visit_type=visit_type,
    )
    if detail is None:
        return None, (jsonify({"error": f"State '{state}' not found in {prog.value}"}), 404)
    return detail, None


@app.route("/api/programs/<program>/states/<path:state>", methods=["GET"])
def get_state_detail(program, state):
    _refresh_data_if_needed()
    detail, err = _state_detail_or_error(program, state)
    if err:
        return err
    detail["users"] = [_serialize_row(u) for u in detail["users"]]
    return jsonify(detail)


def _all_users_or_error(program):
    prog = Program.from_param(program)
    if prog is None:
        return None, _unknown_program(program)
    exclusion_filter = request.args.get("exclusion", "all").strip().lower() or "all"
    if exclusion_filter not in EXCLUSION_FILTERS:
        return None, _invalid_input(
            f"exclusion must be one of: {', '.join(EXCLUSION_FILTERS)}."
        )
    result = all_users(
        _data.get(prog, []),
        _get_resolver(),
        prog,
        query=request.args.get("q", ""),
        state=request.args.get("state", "all"),
        exclusion_filter=exclusion_filter,
    )
    return result, None


@app.route("/api/programs/<program>/users", methods=["GET"])
def get_all_users_endpoint(program):
    _refresh_data_if_needed()
    result, err = _all_users_or_error(program)
    if err:
        return err
    result["users"] = [_serialize_row(u) for u in result["users"]]
    return jsonify(result)


@app.route("/api/programs/<program>/export/users", methods=["GET"])
def export_all_users(program):
    _refresh_data_if_needed()
    result, err = _all_users_or_error(program)
    if err:
        return err
    return _csv_response(
        users_to_export_rows(result["users"]),
        f"{result['program'].lower()}-all-users.csv",
    )


@app.route("/api/programs/<program>/export/states/<path:state>", methods=["GET"])
def export_state(program, state):
    _refresh_data_if_needed()
    detail, err = _state_detail_or_error(program, state)
    if err:
        return err
    rows = [
        {"name": u["name"], "visit_type": u["visit_type"], "is_excluded": u["is_excluded"]}
        for u in detail["users"]
    ]
    return _csv_response(
        users_to_export_rows(rows),
        f"{detail['program'].lower()}-{_filename_slug(detail['state'])}-users.csv",
    )


def _combined_args():
    """Returns (kwargs, error_response)."""
    program_filter = request.args.get("program_filter", "all").strip().lower() or "all"
    if program_filter not in PROGRAM_FILTERS:
        return None, _invalid_input(
            f"program_filter must be one of: {', '.join(PROGRAM_FILTERS)}."
        )
    return {
        "query": request.args.get("q", ""),
        "program_filter": program_filter,
        "state": request.args.get("state", "all"),
        "show_excluded": _flag_arg("show_excluded"),
    }, None


@app.route("/api/combined", methods=["GET"])
def get_combined():
    _refresh_data_if_needed()
    resolver = _get_resolver()
    view = request.args.get("view", "by-user").strip().lower()
    if view == "by-state":
        return jsonify({
            "view": view,
            "states": combined_states(_pools_by_program(), resolver, request.args.get("q", "")),
        })
    if view != "by-user":
        return _invalid_input("view must be one of: by-user, by-state.")
    kwargs, err = _combined_args()
    if err:
        return err
    return jsonify({"view": view, **combined_users(_pools_by_program(), resolver, **kwargs)})


@app.route("/api/combined/export", methods=["GET"])
def export_combined():
    _refresh_data_if_needed()
    kwargs, err = _combined_args()
    if err:
        return err
    result = combined_users(_pools_by_program(), _get_resolver(), **kwargs)
    return _csv_response(combined_to_export_rows(result["users"]), "combined-users.csv")


@app.route("/api/reports/<program>", methods=["GET"])
def get_report(program):
    _refresh_data_if_needed()
    prog = Program.from_param(program)
    if prog is None:
        return _unknown_program(program)
    return jsonify(program_report(_data.get(prog, []), _get_resolver(), prog))


# -- Exclusions ------------------------------------------------------------
@app.route("/api/exclusions", methods=["GET"])
def get_exclusions():
    _refresh_data_if_needed()
    resolver = _get_resolver()
    base = _data["exclusions"]
    return jsonify({
        "excluded_users": list(base.excluded_users),
        "state_exclusions": [e.to_dict() for e in base.state_exclusions],
        "overrides": [e.to_dict() for e in resolver.overrides],
    })


def _validate_toggle_body(body):
    """Returns (error_message, parsed) where parsed is (name, state, program, visit_type)."""
    if not isinstance(body, dict):
        return "Request body must be valid JSON.", None
    name = body.get("name")
    state = body.get("state")
    if not isinstance(name, str) or not name.strip():
        return "'name' is required.", None
    if not isinstance(state, str) or not state.strip():
        return "'state' is required.", None
    program = Program.from_param(body.get("program"))
    if program is None:
        return "'program' must be one of: HRT, TRT.", None
    try:
        visit_type = VisitType.parse(body.get("visit_type"))
    except ValueError as exc:
        return str(exc), None
    return None, (name, state, program, visit_type)


@app.route("/api/exclusions/toggle", methods=["POST"])
def toggle_exclusion():
    _refresh_data_if_needed()
    body = request.get_json(force=True, silent=True)
    message, parsed = _validate_toggle_body(body)
    if message:
        return _invalid_input(message)
    name, state, program, visit_type = parsed

    resolver = _get_resolver()
    resolver.toggle(name, state, program, visit_type)
    return jsonify({
        "ok": True,
        "is_excluded": resolver.is_excluded(name, state, program, visit_type),
        "overrides": [e.to_dict() for e in resolver.overrides],
    })


@app.route("/api/exclusions/overrides", methods=["DELETE"])
def clear_exclusion_overrides():
    _get_resolver().clear_overrides()
    return jsonify({"ok": True, "overrides": []})


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
