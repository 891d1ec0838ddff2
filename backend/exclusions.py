"""
Exclusion resolver: server default exclusions overlaid with a per-client
override list.

Overrides are purely additive toggles. An override entry means "excluded";
toggling the same (program, state, user, visit type) key again removes it.

Matching rules:
  - user: trimmed and case-insensitive
  - program and state: exact
  - visit type: a query without one, or a record without one, matches any
    visit type. toggle() keys on exact visit-type equality, so toggling
    "Initial" never removes a record stored for "Follow Up" or for both.
  - the legacy flat excluded_users list only feeds the unscoped query.

The override list lives behind an OverrideStore so the merge logic can be
exercised without any storage medium.
"""

import json
import os
import sys

from models import ExclusionsData, StateExclusion, VisitType

OVERRIDES_NAMESPACE = "resourcePoolViewer_stateExclusions_v2"


class OverrideStore:
    """Persistence boundary for the override list (raw JSON-shaped records)."""

    def load(self):
        """Return the stored list, or None when nothing has been stored."""
        raise NotImplementedError

    def save(self, entries: list[dict]) -> None:
        raise NotImplementedError


class MemoryOverrideStore(OverrideStore):
    def __init__(self, entries=None):
        self.entries = entries
        self.save_count = 0

    def load(self):
        return self.entries

    def save(self, entries: list[dict]) -> None:
        self.entries = [dict(e) for e in entries]
        self.save_count += 1


class JsonFileOverrideStore(OverrideStore):
    """
    Stores the list under a namespaced key of a local JSON document, so one
    file can hold several independent override lists.
    """

    def __init__(self, path: str, namespace: str = OVERRIDES_NAMESPACE):
        self.path = path
        self.namespace = namespace

    def _read_document(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, encoding="utf-8") as fh:
            document = json.load(fh)
        if not isinstance(document, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return document

    def load(self):
        return self._read_document().get(self.namespace)

    def save(self, entries: list[dict]) -> None:
        try:
            document = self._read_document()
        except ValueError:
            document = {}
        document[self.namespace] = entries
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2)
        os.replace(tmp_path, self.path)


def _visit_types_compatible(query: VisitType | None, record: VisitType | None) -> bool:
    return query is None or record is None or query == record


def _scoped_match(entry: StateExclusion, user_key: str, state: str, program, visit_type) -> bool:
    return (
        entry.program == program
        and entry.state == state
        and entry.user_key == user_key
        and _visit_types_compatible(visit_type, entry.visit_type)
    )


def _name_key(name) -> str:
    return str(name or "").strip().lower()


class ExclusionResolver:
    def __init__(self, base: ExclusionsData | None = None, store: OverrideStore | None = None):
        self.base = base if base is not None else ExclusionsData.empty()
        self.store = store if store is not None else MemoryOverrideStore()
        self._overrides: list[StateExclusion] = self._load_overrides()

    # -- persistence ------------------------------------------------------
    def _load_overrides(self) -> list[StateExclusion]:
        try:
            raw = self.store.load()
        except Exception as exc:
            print(f"[WARN] Failed to load exclusion overrides: {exc}", file=sys.stderr)
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            print(
                f"[WARN] Ignoring stored exclusion overrides: expected a list, got {type(raw).__name__}",
                file=sys.stderr,
            )
            return []
        overrides = []
        for i, item in enumerate(raw):
            try:
                overrides.append(StateExclusion.from_dict(item))
            except ValueError as exc:
                print(f"[WARN] Skipping stored override #{i}: {exc}", file=sys.stderr)
        return overrides

    def _persist(self) -> None:
        try:
            self.store.save([entry.to_dict() for entry in self._overrides])
        except Exception as exc:
            print(f"[WARN] Failed to save exclusion overrides: {exc}", file=sys.stderr)

    @property
    def overrides(self) -> tuple[StateExclusion, ...]:
        return tuple(self._overrides)

    # -- queries ----------------------------------------------------------
    def is_excluded(self, name, state=None, program=None, visit_type=None) -> bool:
        user_key = _name_key(name)

        if not state or program is None:
            # Unscoped query used by cross-state views.
            if any(_name_key(u) == user_key for u in self.base.excluded_users):
                return True
            if any(e.user_key == user_key for e in self.base.state_exclusions):
                return True
            return any(e.user_key == user_key for e in self._overrides)

        if any(_scoped_match(e, user_key, state, program, visit_type) for e in self._overrides):
            return True
        return any(
            _scoped_match(e, user_key, state, program, visit_type)
            for e in self.base.state_exclusions
        )

    def get_excluded_count_for_state(self, state: str, program, visit_type=None) -> int:
        """
        Base records plus override records in scope.

        A user excluded in both layers counts twice; this is a raw record
        count, not a distinct-user count.
        """
        def in_scope(entry):
            return (
                entry.program == program
                and entry.state == state
                and _visit_types_compatible(visit_type, entry.visit_type)
            )

        base_count = sum(1 for e in self.base.state_exclusions if in_scope(e))
        local_count = sum(1 for e in self._overrides if in_scope(e))
        return base_count + local_count

    def get_total_excluded_count(self, program) -> int:
        base_count = sum(1 for e in self.base.state_exclusions if e.program == program)
        local_count = sum(1 for e in self._overrides if e.program == program)
        return base_count + local_count

    # -- mutations --------------------------------------------------------
    def toggle(self, name: str, state: str, program, visit_type=None) -> None:
        """Remove the matching override if present, else add one."""
        user_key = _name_key(name)
        for i, entry in enumerate(self._overrides):
            if (
                entry.program == program
                and entry.state == state
                and entry.user_key == user_key
                and entry.visit_type == visit_type
            ):
                del self._overrides[i]
                break
        else:
            self._overrides.append(
                StateExclusion(program=program, state=state, user=name, visit_type=visit_type)
            )
        self._persist()

    def clear_overrides(self) -> None:
        self._overrides = []
        self._persist()
