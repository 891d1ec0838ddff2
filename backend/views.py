"""
Row shaping for the dashboard screens.

Every function takes parsed pools plus an ExclusionResolver and returns
plain JSON-ready dicts. No Flask imports.
"""

from models import Program, VISIT_TYPE_ORDER
from pool_parser import get_all_users, get_pools_for_state

EXCLUSION_FILTERS = ("all", "active", "excluded")
PROGRAM_FILTERS = ("all", "both", "hrt-only", "trt-only")


def _visit_value(visit_type):
    return visit_type.value if visit_type is not None else None


def _matches(query: str, *values: str) -> bool:
    if not query:
        return True
    q = query.lower()
    return any(q in (v or "").lower() for v in values)


def list_states(pools) -> list[str]:
    return sorted({p.state for p in pools})


def _all_states(pools_by_program: dict) -> list[str]:
    return sorted({
        p.state
        for program in Program
        for p in pools_by_program.get(program, [])
    })


def dashboard_stats(pools, resolver, program: Program) -> dict:
    """Per-program headline numbers, checked per state and visit type."""
    active = 0
    excluded = 0
    unique_active: set[str] = set()
    for pool in pools:
        for user in pool.users:
            if resolver.is_excluded(user, pool.state, program, pool.visit_type):
                excluded += 1
            else:
                active += 1
                unique_active.add(user)
    return {
        "total_states": len(list_states(pools)),
        "total_users": len(unique_active),
        "active_users": active,
        "excluded_in_program": excluded,
    }


def state_grid(pools, resolver, program: Program, query: str = "") -> list[dict]:
    """One card per state with active/total counts per visit type."""
    cards = []
    for state in list_states(pools):
        if not _matches(query, state):
            continue
        visits = []
        for pool in get_pools_for_state(pools, state):
            active = sum(
                1 for u in pool.users
                if not resolver.is_excluded(u, state, program, pool.visit_type)
            )
            visits.append({
                "visit_type": _visit_value(pool.visit_type),
                "total": len(pool.users),
                "active": active,
            })
        cards.append({
            "state": state,
            "visits": visits,
            "excluded_count": resolver.get_excluded_count_for_state(state, program),
        })
    return cards


def state_detail(
    pools,
    resolver,
    program: Program,
    state: str,
    query: str = "",
    show_excluded: bool = False,
    visit_type=None,
) -> dict | None:
    """Users of one state with per-visit-type flags. None for unknown states."""
    state_pools = get_pools_for_state(pools, state)
    if not state_pools:
        return None

    rows = []
    for pool in state_pools:
        if visit_type is not None and pool.visit_type != visit_type:
            continue
        for user in pool.users:
            rows.append({
                "name": user,
                "state": state,
                "visit_type": pool.visit_type,
                "is_excluded": resolver.is_excluded(user, state, program, pool.visit_type),
            })

    total = len(rows)
    excluded = sum(1 for r in rows if r["is_excluded"])
    users = [
        r for r in rows
        if _matches(query, r["name"]) and (show_excluded or not r["is_excluded"])
    ]
    users.sort(key=lambda r: (r["name"], VISIT_TYPE_ORDER[r["visit_type"]]))
    return {
        "program": program.value,
        "state": state,
        "visit_types": [_visit_value(p.visit_type) for p in state_pools],
        "users": users,
        "stats": {"total": total, "excluded": excluded, "active": total - excluded},
    }


def all_users(
    pools,
    resolver,
    program: Program,
    query: str = "",
    state: str = "all",
    exclusion_filter: str = "all",
) -> dict:
    """Every assignment of a program, filtered by search, state and exclusion status."""
    rows = [
        {
            **row,
            "is_excluded": resolver.is_excluded(row["name"], row["state"], program, row["visit_type"]),
        }
        for row in get_all_users(pools)
    ]
    filtered = []
    for row in rows:
        if not _matches(query, row["name"], row["state"]):
            continue
        if state and state != "all" and row["state"] != state:
            continue
        if exclusion_filter == "excluded" and not row["is_excluded"]:
            continue
        if exclusion_filter == "active" and row["is_excluded"]:
            continue
        filtered.append(row)

    excluded = sum(1 for r in rows if r["is_excluded"])
    return {
        "program": program.value,
        "states": list_states(pools),
        "users": filtered,
        "stats": {
            "total": len(rows),
            "excluded": excluded,
            "active": len(rows) - excluded,
            "state_count": len(list_states(pools)),
        },
    }


def _combined_user_map(pools_by_program: dict, resolver) -> dict[str, dict]:
    users: dict[str, dict] = {}
    for program in (Program.HRT, Program.TRT):
        prefix = program.value.lower()
        for pool in pools_by_program.get(program, []):
            for user in pool.users:
                entry = users.setdefault(user, {
                    "name": user,
                    "hrt_states": [],
                    "trt_states": [],
                    "hrt_active_states": [],
                    "trt_active_states": [],
                })
                if pool.state not in entry[f"{prefix}_states"]:
                    entry[f"{prefix}_states"].append(pool.state)
                active = not resolver.is_excluded(user, pool.state, program, pool.visit_type)
                if active and pool.state not in entry[f"{prefix}_active_states"]:
                    entry[f"{prefix}_active_states"].append(pool.state)
    return users


def combined_users(
    pools_by_program: dict,
    resolver,
    query: str = "",
    program_filter: str = "all",
    state: str = "all",
    show_excluded: bool = False,
) -> dict:
    """Cross-program view keyed by provider."""
    users = list(_combined_user_map(pools_by_program, resolver).values())

    def keep(u) -> bool:
        if not _matches(query, u["name"]):
            return False
        has_hrt = bool(u["hrt_active_states"])
        has_trt = bool(u["trt_active_states"])
        if not show_excluded and not has_hrt and not has_trt:
            return False
        in_hrt = bool(u["hrt_states"]) if show_excluded else has_hrt
        in_trt = bool(u["trt_states"]) if show_excluded else has_trt
        if program_filter == "both" and not (in_hrt and in_trt):
            return False
        if program_filter == "hrt-only" and not (in_hrt and not in_trt):
            return False
        if program_filter == "trt-only" and not (in_trt and not in_hrt):
            return False
        if state and state != "all":
            in_hrt_state = state in u["hrt_active_states"] or (show_excluded and state in u["hrt_states"])
            in_trt_state = state in u["trt_active_states"] or (show_excluded and state in u["trt_states"])
            if not in_hrt_state and not in_trt_state:
                return False
        return True

    filtered = sorted((u for u in users if keep(u)), key=lambda u: u["name"])
    all_states = _all_states(pools_by_program)
    return {
        "users": filtered,
        "states": all_states,
        "stats": {
            "in_both": sum(1 for u in users if u["hrt_active_states"] and u["trt_active_states"]),
            "hrt_only": sum(1 for u in users if u["hrt_active_states"] and not u["trt_active_states"]),
            "trt_only": sum(1 for u in users if u["trt_active_states"] and not u["hrt_active_states"]),
            "total_users": sum(1 for u in users if u["hrt_active_states"] or u["trt_active_states"]),
            "total_states": len(all_states),
        },
    }


def combined_states(pools_by_program: dict, resolver, query: str = "") -> list[dict]:
    """Per-state overlap of active providers between the two programs."""
    def active_users(program: Program, state: str) -> list[str]:
        names: list[str] = []
        for pool in get_pools_for_state(pools_by_program.get(program, []), state):
            for user in pool.users:
                if user in names:
                    continue
                if not resolver.is_excluded(user, state, program, pool.visit_type):
                    names.append(user)
        return names

    all_states = _all_states(pools_by_program)
    out = []
    for state in all_states:
        if not _matches(query, state):
            continue
        hrt = active_users(Program.HRT, state)
        trt = active_users(Program.TRT, state)
        out.append({
            "state": state,
            "hrt_users": hrt,
            "trt_users": trt,
            "both_users": [u for u in hrt if u in trt],
            "hrt_only": [u for u in hrt if u not in trt],
            "trt_only": [u for u in trt if u not in hrt],
        })
    return out
