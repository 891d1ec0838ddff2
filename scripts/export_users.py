"""
Offline export of a program's provider assignments with exclusion flags.

Overrides are read from (and toggles written to) a local JSON document
keyed by the same namespace the browser uses, so a shared machine can keep
its own exclusion list without touching exclusions.json.

Usage:
    python scripts/export_users.py --program HRT [--data DIR] [--out FILE]
        [--overrides FILE] [--state NAME] [--exclusion all|active|excluded]
        [--toggle "Name|State[|Visit Type]"]...
"""

from __future__ import annotations

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from csv_export import build_csv, users_to_export_rows  # noqa: E402
from data_loader import EXCLUSIONS_FILE, load_exclusions, load_program_data  # noqa: E402
from exclusions import ExclusionResolver, JsonFileOverrideStore  # noqa: E402
from models import Program, VisitType  # noqa: E402
from views import EXCLUSION_FILTERS, all_users  # noqa: E402

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def parse_toggle(raw: str) -> tuple[str, str, VisitType | None]:
    parts = [p.strip() for p in raw.split("|")]
    if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
        raise ValueError(f"--toggle expects 'Name|State[|Visit Type]', got {raw!r}")
    visit_type = VisitType.parse(parts[2]) if len(parts) == 3 else None
    return parts[0], parts[1], visit_type


def export_users(
    program: Program,
    data_dir: str,
    overrides_path: str,
    state: str = "all",
    exclusion_filter: str = "all",
    toggles: list[tuple[str, str, VisitType | None]] | None = None,
) -> str:
    """Return the CSV text for the filtered assignments."""
    pools = load_program_data(data_dir, program)
    base = load_exclusions(os.path.join(data_dir, EXCLUSIONS_FILE))
    resolver = ExclusionResolver(base, JsonFileOverrideStore(overrides_path))
    for name, toggle_state, visit_type in toggles or []:
        resolver.toggle(name, toggle_state, program, visit_type)
        print(f"[INFO] Toggled {name} in {toggle_state} ({visit_type.value if visit_type else 'all visits'})", file=sys.stderr)

    result = all_users(pools, resolver, program, state=state, exclusion_filter=exclusion_filter)
    return build_csv(users_to_export_rows(result["users"]))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Export provider assignments as CSV.")
    parser.add_argument("--program", required=True, help="HRT or TRT")
    parser.add_argument("--data", default=os.path.join(REPO_ROOT, "data"), help="Data directory")
    parser.add_argument("--out", default=None, help="Output CSV path (default: stdout)")
    parser.add_argument(
        "--overrides",
        default=os.path.join(REPO_ROOT, "data", "local_overrides.json"),
        help="Local override document",
    )
    parser.add_argument("--state", default="all")
    parser.add_argument("--exclusion", default="all", choices=EXCLUSION_FILTERS)
    parser.add_argument("--toggle", action="append", default=[])
    args = parser.parse_args(argv)

    program = Program.from_param(args.program)
    if program is None:
        print(f"[ERROR] Unknown program: {args.program}", file=sys.stderr)
        return 2
    try:
        toggles = [parse_toggle(t) for t in args.toggle]
    except ValueError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    content = export_users(program, args.data, args.overrides, args.state, args.exclusion, toggles)
    if args.out:
        with open(args.out, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        print(f"[OK] Wrote {args.out}")
    else:
        sys.stdout.write(content + "\n" if content else content)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
