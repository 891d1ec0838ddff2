import re

_WHITESPACE = re.compile(r"\s+")
# "Florida (no marketing)" -> "Florida"
_TRAILING_PAREN = re.compile(r"\s*\(.*\)\s*$")

# Spreadsheet exports label merged/blank header cells "Unnamed: 3".
PLACEHOLDER_HEADER_PREFIX = "unnamed"

# Legend text that shows up in the header row of the source sheet.
LEGEND_HEADER_TOKENS = frozenset({"key"})
LEGEND_HEADER_PHRASES = ("please add", "pending", "provider has")

# Cell values that are legend/status markers rather than provider names.
SENTINEL_TOKENS = frozenset({"closed", "back-up", "key"})
SENTINEL_SUBSTRINGS = ("please add", "pending", "provider has", "license")


def normalize_user_name(raw) -> str:
    """Trim and collapse internal whitespace. Non-strings become ''."""
    if not raw or not isinstance(raw, str):
        return ""
    return _WHITESPACE.sub(" ", raw.strip())


def normalize_state_name(raw) -> str:
    """
    Normalizes a state header cell.
    Handles: '  Florida ', 'New   York', 'Texas (no marketing)'
    """
    if not raw or not isinstance(raw, str):
        return ""
    stripped = _TRAILING_PAREN.sub("", raw.strip())
    return _WHITESPACE.sub(" ", stripped).strip()


def is_placeholder_header(header) -> bool:
    """Blank or "Unnamed: n" cells: the merged neighbour of a state header."""
    if not header or not isinstance(header, str):
        return True
    lowered = header.strip().lower()
    return not lowered or lowered.startswith(PLACEHOLDER_HEADER_PREFIX)


def is_legend_header(header) -> bool:
    """Legend text ("Key", "Please add ...") heading a non-state column."""
    if not header or not isinstance(header, str):
        return False
    lowered = header.strip().lower()
    if lowered in LEGEND_HEADER_TOKENS:
        return True
    return any(phrase in lowered for phrase in LEGEND_HEADER_PHRASES)


def is_sentinel_name(name) -> bool:
    """True when a cell is a legend/status marker instead of a provider."""
    lowered = normalize_user_name(name).lower()
    if lowered in SENTINEL_TOKENS:
        return True
    return any(sub in lowered for sub in SENTINEL_SUBSTRINGS)


def is_valid_user(name) -> bool:
    normalized = normalize_user_name(name)
    return bool(normalized) and not is_sentinel_name(normalized)


def dedupe_users(users) -> list[str]:
    """Case-sensitive de-duplication, first occurrence wins."""
    seen: set[str] = set()
    out: list[str] = []
    for user in users:
        if user in seen:
            continue
        seen.add(user)
        out.append(user)
    return out
