"""
Export the resource-pool workbook → data/hrt.csv and data/trt.csv.

The sheets are read without a header so the merged state row and the
Initial/Follow up label row survive exactly as the parser expects them.

Usage:
    python scripts/convert_workbook.py --src PATH [--out DIR]
        [--hrt-sheet NAME] [--trt-sheet NAME]

Defaults:
    --out        data/  (repo root)
    --hrt-sheet  first sheet whose name contains "HRT"
    --trt-sheet  first sheet whose name contains "TRT"
"""

import argparse
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from data_loader import PROGRAM_FILES  # noqa: E402
from models import Program  # noqa: E402


def find_sheet(sheet_names: list[str], program: Program, explicit: str | None = None) -> str | None:
    if explicit:
        return explicit if explicit in sheet_names else None
    token = program.value.lower()
    return next((s for s in sheet_names if token in s.lower()), None)


def convert(src: str, out_dir: str, sheet_overrides: dict | None = None) -> int:
    """Write one headerless CSV per program. Returns the number written."""
    if not os.path.isfile(src):
        print(f"[FATAL] Source file not found: {src}")
        sys.exit(1)

    sheet_overrides = sheet_overrides or {}
    os.makedirs(out_dir, exist_ok=True)

    xl = pd.ExcelFile(src)
    sheets = xl.sheet_names
    print(f"[INFO] Found {len(sheets)} sheets in '{src}'")

    written = 0
    for program, filename in PROGRAM_FILES.items():
        sheet = find_sheet(sheets, program, sheet_overrides.get(program))
        if sheet is None:
            print(f"[WARN] No sheet found for {program.value}; skipping {filename}")
            continue
        df = xl.parse(sheet, header=None, dtype=str).fillna("")
        dest = os.path.join(out_dir, filename)
        df.to_csv(dest, index=False, header=False)
        print(f"[OK]   {sheet} → {dest}  ({len(df)} rows)")
        written += 1

    print(f"[INFO] Conversion complete. {written} CSVs written to '{out_dir}'")
    return written


if __name__ == "__main__":
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser = argparse.ArgumentParser(description="Export the resource-pool workbook to per-program CSVs.")
    parser.add_argument("--src", required=True, help="Source xlsx file")
    parser.add_argument(
        "--out",
        default=os.path.join(repo_root, "data"),
        help="Output directory for CSV files",
    )
    parser.add_argument("--hrt-sheet", default=None, help="Sheet holding the HRT pools")
    parser.add_argument("--trt-sheet", default=None, help="Sheet holding the TRT pools")
    args = parser.parse_args()
    convert(
        args.src,
        args.out,
        {Program.HRT: args.hrt_sheet, Program.TRT: args.trt_sheet},
    )
