"""
Program-level coverage report.

Uses the unscoped exclusion query: a provider excluded anywhere is left out
of every count here, matching the cross-state nature of the report.
"""

import pandas as pd

TOP_USERS = 15
TOP_STATES = 10

_ASSIGNMENT_COLUMNS = ["state", "visit_type", "user", "is_excluded"]


def assignments_frame(pools, resolver) -> pd.DataFrame:
    """One row per (state, visit type, user) assignment."""
    rows = [
        {
            "state": pool.state,
            "visit_type": pool.visit_type.value if pool.visit_type else None,
            "user": user,
            "is_excluded": resolver.is_excluded(user),
        }
        for pool in pools
        for user in pool.users
    ]
    if not rows:
        return pd.DataFrame(columns=_ASSIGNMENT_COLUMNS)
    return pd.DataFrame(rows, columns=_ASSIGNMENT_COLUMNS)


def _round1(value: float) -> float:
    return float(round(value, 1))


def program_report(pools, resolver, program) -> dict:
    df = assignments_frame(pools, resolver)
    total_states = int(df["state"].nunique()) if len(df) else 0

    active = df[~df["is_excluded"].astype(bool)]
    user_states = pd.DataFrame(
        [
            {"user": user, "states": sorted(set(group)), "state_count": int(group.nunique())}
            for user, group in active.groupby("user")["state"]
        ],
        columns=["user", "states", "state_count"],
    )

    def _user_rows(frame):
        return [
            {"name": r["user"], "state_count": int(r["state_count"]), "states": list(r["states"])}
            for _, r in frame.iterrows()
        ]

    most_states = user_states.sort_values(
        ["state_count", "user"], ascending=[False, True], kind="stable"
    ).head(TOP_USERS)
    fewest_states = user_states[user_states["state_count"] >= 1].sort_values(
        ["state_count", "user"], ascending=[True, True], kind="stable"
    ).head(TOP_USERS)

    # Distinct users per state, active vs. all.
    if len(df):
        totals = df.groupby("state")["user"].nunique()
        actives = active.groupby("state")["user"].nunique()
        state_counts = pd.DataFrame({"total_count": totals})
        state_counts["user_count"] = actives.reindex(state_counts.index, fill_value=0)
        state_counts = state_counts.reset_index()
    else:
        state_counts = pd.DataFrame(columns=["state", "total_count", "user_count"])

    def _state_rows(frame):
        return [
            {
                "state": r["state"],
                "user_count": int(r["user_count"]),
                "total_count": int(r["total_count"]),
            }
            for _, r in frame.iterrows()
        ]

    most_users = state_counts.sort_values(
        ["user_count", "state"], ascending=[False, True], kind="stable"
    ).head(TOP_STATES)
    fewest_users = state_counts.sort_values(
        ["user_count", "state"], ascending=[True, True], kind="stable"
    ).head(TOP_STATES)

    total_unique = len(user_states)
    avg_states_per_user = _round1(user_states["state_count"].mean()) if total_unique else 0.0
    avg_users_per_state = (
        _round1(state_counts["user_count"].sum() / total_states) if total_states else 0.0
    )

    return {
        "program": getattr(program, "value", program),
        "users_in_most_states": _user_rows(most_states),
        "users_in_fewest_states": _user_rows(fewest_states),
        "states_with_most_users": _state_rows(most_users),
        "states_with_fewest_users": _state_rows(fewest_users),
        "total_unique_users": total_unique,
        "avg_states_per_user": avg_states_per_user,
        "avg_users_per_state": avg_users_per_state,
        "total_states": total_states,
    }
