import json
import os
import sys

from models import ExclusionsData, Program, StateExclusion
from pool_parser import parse_resource_pool_csv


PROGRAM_FILES = {
    Program.HRT: "hrt.csv",
    Program.TRT: "trt.csv",
}
EXCLUSIONS_FILE = "exclusions.json"


def load_program_data(data_dir: str, program: Program, visit_types=True) -> list:
    """
    Load and parse the CSV for one program. Missing/unreadable file -> [].

    The program files use the state row + visit-type row layout; pass
    visit_types=None to detect older header + data files instead.
    """
    filename = PROGRAM_FILES[program]
    path = os.path.join(data_dir, filename)
    try:
        with open(path, encoding="utf-8-sig") as fh:
            content = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        print(f"[ERROR] Error loading {filename}: {exc}", file=sys.stderr)
        return []
    return parse_resource_pool_csv(content, program, visit_types=visit_types)


def _coerce_string_list(raw) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(str(v) for v in raw if isinstance(v, str) and v.strip())


def _parse_state_exclusions(raw) -> tuple[StateExclusion, ...]:
    if not isinstance(raw, list):
        return ()
    records = []
    for i, item in enumerate(raw):
        try:
            records.append(StateExclusion.from_dict(item))
        except ValueError as exc:
            print(f"[WARN] Skipping stateExclusions[{i}]: {exc}", file=sys.stderr)
    return tuple(records)


def exclusions_from_payload(payload) -> ExclusionsData:
    """Build ExclusionsData from the decoded exclusions.json document."""
    if not isinstance(payload, dict):
        raise ValueError("exclusions document must be a JSON object")
    return ExclusionsData(
        excluded_users=_coerce_string_list(payload.get("excludedUsers")),
        state_exclusions=_parse_state_exclusions(payload.get("stateExclusions")),
    )


def load_exclusions(path: str) -> ExclusionsData:
    """Load server-side default exclusions. Missing/malformed file -> empty."""
    try:
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
        return exclusions_from_payload(payload)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Error loading {os.path.basename(path)}: {exc}", file=sys.stderr)
        return ExclusionsData.empty()


def load_all_program_data(data_dir: str, exclusions_path: str | None = None) -> dict:
    """Load both programs plus the default exclusions."""
    if exclusions_path is None:
        exclusions_path = os.path.join(data_dir, EXCLUSIONS_FILE)
    data = {program: load_program_data(data_dir, program) for program in Program}
    data["exclusions"] = load_exclusions(exclusions_path)
    return data


def data_files_mtime(data_dir: str, exclusions_path: str | None = None):
    """Newest mtime across the data files, or None when none exist."""
    paths = [os.path.join(data_dir, name) for name in PROGRAM_FILES.values()]
    paths.append(exclusions_path or os.path.join(data_dir, EXCLUSIONS_FILE))
    mtimes = []
    for path in paths:
        try:
            mtimes.append(os.path.getmtime(path))
        except OSError:
            continue
    return max(mtimes) if mtimes else None
