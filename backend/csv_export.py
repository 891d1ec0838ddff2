"""
CSV serialization for the export buttons.

Quoting is RFC4180 minimal: only fields holding a comma, quote or newline
are wrapped, with embedded quotes doubled. Rows are joined with newlines and
the last row carries no line terminator.
"""

import csv

import pandas as pd


def build_csv(rows: list[dict]) -> str:
    """Header from the first row's keys, in order. Empty input -> ''."""
    if not rows:
        return ""
    headers = list(rows[0].keys())
    df = pd.DataFrame(rows, columns=headers).astype(object)
    df = df.where(pd.notna(df), "").astype(str)
    text = df.to_csv(index=False, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    # to_csv terminates every row; drop the final one.
    return text[:-1] if text.endswith("\n") else text


def _yes_no(flag) -> str:
    return "Yes" if flag else "No"


def users_to_export_rows(users: list[dict]) -> list[dict]:
    """
    Shape resolved user rows for export.

    Each input row has `name` and optionally `state`, `visit_type` and
    `is_excluded`; optional columns only appear when the key is present.
    """
    out = []
    for user in users:
        row = {"Name": user["name"]}
        if user.get("state") is not None:
            row["State"] = user["state"]
        if user.get("visit_type") is not None:
            visit_type = user["visit_type"]
            row["Visit Type"] = getattr(visit_type, "value", visit_type)
        if user.get("is_excluded") is not None:
            row["Excluded"] = _yes_no(user["is_excluded"])
        out.append(row)
    return out


def combined_to_export_rows(users: list[dict]) -> list[dict]:
    return [
        {
            "Name": u["name"],
            "HRT States": len(u["hrt_active_states"]),
            "TRT States": len(u["trt_active_states"]),
            "In Both": _yes_no(u["hrt_active_states"] and u["trt_active_states"]),
        }
        for u in users
    ]
