"""
Start the resource-pool API against a local data directory.

Usage:
    python scripts/run_local.py [--data DIR] [--port N]

Reports which program CSVs and exclusions.json were found before starting,
then runs backend/server.py with DATA_PATH and PORT set.
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_ENTRYPOINT = REPO_ROOT / "backend" / "server.py"
DATA_DIR = REPO_ROOT / "data"

sys.path.insert(0, str(REPO_ROOT / "backend"))

from data_loader import EXCLUSIONS_FILE, PROGRAM_FILES  # noqa: E402


def report_data_files(data_dir: Path) -> int:
    """Print one line per expected data file. Returns how many are present."""
    expected = [(p.value, name) for p, name in PROGRAM_FILES.items()]
    expected.append(("exclusions", EXCLUSIONS_FILE))
    found = 0
    for label, name in expected:
        path = data_dir / name
        if path.is_file():
            found += 1
            print(f"[run-local] {label}: {path}", flush=True)
        else:
            print(f"[run-local] WARN: {label} file missing: {path}", file=sys.stderr, flush=True)
    return found


def run_local(data_dir: Path = DATA_DIR, port: int | None = None) -> int:
    if not BACKEND_ENTRYPOINT.is_file():
        print(
            f"[run-local] ERROR: backend entrypoint missing: {BACKEND_ENTRYPOINT}",
            file=sys.stderr,
            flush=True,
        )
        return 1
    if not data_dir.is_dir():
        print(f"[run-local] WARN: data directory missing: {data_dir}", file=sys.stderr, flush=True)
    elif report_data_files(data_dir) == 0:
        print("[run-local] WARN: no data files found; the API will serve empty pools.", file=sys.stderr, flush=True)

    env = dict(os.environ)
    env["DATA_PATH"] = str(data_dir)
    if port is not None:
        env["PORT"] = str(port)

    print(f"[run-local] Starting resource-pool API (DATA_PATH={data_dir})...", flush=True)
    try:
        proc = subprocess.run([sys.executable, str(BACKEND_ENTRYPOINT)], cwd=str(REPO_ROOT), env=env)
        return proc.returncode
    except KeyboardInterrupt:
        print("\n[run-local] Stopped by user.", flush=True)
        return 130


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the resource-pool API locally.")
    parser.add_argument("--data", default=str(DATA_DIR), help="Directory holding hrt.csv, trt.csv, exclusions.json")
    parser.add_argument("--port", type=int, default=None, help="Port for the Flask server")
    args = parser.parse_args(argv)
    return run_local(Path(args.data).resolve(), args.port)


if __name__ == "__main__":
    raise SystemExit(main())
