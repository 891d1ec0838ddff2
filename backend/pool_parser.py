"""
Parser for the resource-pool spreadsheet export.

Layout of the source CSV (one file per program):
  Row 1: state names. Only the first column of an Initial/Follow Up pair
         carries the state; the merged neighbour is blank.
  Row 2: "Initial" / "Follow up" labels (absent in older exports).
  Row 3+: provider names, one per cell.

Pure function over text: file I/O lives in data_loader.py.
"""

import csv
import io
import sys

from models import ResourcePool, VisitType, VISIT_TYPE_ORDER
from normalizer import (
    dedupe_users,
    is_legend_header,
    is_placeholder_header,
    is_valid_user,
    normalize_state_name,
    normalize_user_name,
)


def _read_rows(raw_text: str) -> list[list[str]]:
    """
    Split raw text into rows of cells.

    Malformed quoting never aborts the parse: the strict pass reports the
    problem and a lenient pass recovers whatever rows it can.
    """
    text = (raw_text or "").lstrip("\ufeff")
    try:
        return list(csv.reader(io.StringIO(text), strict=True))
    except csv.Error as exc:
        print(f"[WARN] CSV parsing warnings: {exc}; continuing with recovered rows", file=sys.stderr)
    rows: list[list[str]] = []
    reader = csv.reader(io.StringIO(text), strict=False)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as exc:
            print(f"[WARN] Skipping unreadable CSV row {reader.line_num}: {exc}", file=sys.stderr)
            continue
        rows.append(row)
    return rows


def _looks_like_visit_type_row(row: list[str]) -> bool:
    """Every non-blank cell must read as a visit-type label."""
    labels = [(cell or "").strip().lower() for cell in row]
    labels = [label for label in labels if label]
    return bool(labels) and all(
        label.startswith("initial") or "follow" in label for label in labels
    )


def _map_columns_to_states(header_row: list[str]) -> dict[int, str]:
    """
    Column index -> state name.

    A blank or "Unnamed: n" header inherits the nearest preceding state on
    the row; blank columns before the first state are dropped. Legend
    headers drop their column and end the preceding state's block.
    """
    column_to_state: dict[int, str] = {}
    last_state = ""
    for index, header in enumerate(header_row):
        if is_legend_header(header):
            last_state = ""
            continue
        state = "" if is_placeholder_header(header) else normalize_state_name(header)
        if state:
            last_state = state
            column_to_state[index] = state
        elif last_state:
            column_to_state[index] = last_state
    return column_to_state


def _map_columns_to_visit_types(label_row: list[str], columns) -> dict[int, VisitType]:
    return {
        index: VisitType.from_label(label_row[index] if index < len(label_row) else "")
        for index in columns
    }


def parse_resource_pool_csv(raw_text: str, program, visit_types=None) -> list[ResourcePool]:
    """
    Parse CSV content into ResourcePool records.

    visit_types: True for the three-row layout, False for the older
    header + data layout, None to detect the label row automatically.
    Too few rows yields [] rather than an error.
    """
    rows = _read_rows(raw_text)
    if visit_types is None:
        visit_types = len(rows) >= 2 and _looks_like_visit_type_row(rows[1])

    if visit_types:
        if len(rows) < 3:
            return []
        data_rows = rows[2:]
    else:
        if len(rows) < 2:
            return []
        data_rows = rows[1:]

    column_to_state = _map_columns_to_states(rows[0])
    if visit_types:
        column_to_visit = _map_columns_to_visit_types(rows[1], column_to_state)
    else:
        column_to_visit = {index: None for index in column_to_state}

    buckets: dict[tuple, list[str]] = {}
    for row in data_rows:
        if not row:
            continue
        for index, state in column_to_state.items():
            if index >= len(row):
                continue
            name = normalize_user_name(row[index])
            if not is_valid_user(name):
                continue
            buckets.setdefault((state, column_to_visit[index]), []).append(name)

    pools = []
    for (state, visit_type), users in buckets.items():
        deduped = dedupe_users(users)
        if deduped:
            pools.append(ResourcePool(program=program, state=state, visit_type=visit_type, users=deduped))

    pools.sort(key=lambda p: (p.state, VISIT_TYPE_ORDER[p.visit_type]))
    return pools


def get_pools_for_state(pools: list[ResourcePool], state: str) -> list[ResourcePool]:
    return [p for p in pools if p.state == state]


def get_users_for_state(pools: list[ResourcePool], state: str, visit_type=None) -> list[str]:
    """Users in a state, merged across visit types unless one is given."""
    users: list[str] = []
    for pool in get_pools_for_state(pools, state):
        if visit_type is not None and pool.visit_type != visit_type:
            continue
        users.extend(pool.users)
    return dedupe_users(users)


def get_all_users(pools: list[ResourcePool]) -> list[dict]:
    """One row per (user, state, visit type) assignment, sorted by name then state."""
    rows = [
        {"name": user, "state": pool.state, "visit_type": pool.visit_type}
        for pool in pools
        for user in pool.users
    ]
    rows.sort(key=lambda r: (r["name"], r["state"], VISIT_TYPE_ORDER[r["visit_type"]]))
    return rows
