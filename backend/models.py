"""
Domain records shared by the parser, the exclusion resolver and the server.

Wire shapes (exclusions.json and the persisted override list) keep the
camelCase keys the data files were authored with; API payloads built in
server.py use snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Program(str, Enum):
    HRT = "HRT"
    TRT = "TRT"

    @classmethod
    def from_param(cls, raw) -> "Program | None":
        """Case-insensitive lookup for route params. Unknown values -> None."""
        key = str(raw or "").strip().upper()
        try:
            return cls(key)
        except ValueError:
            return None


class VisitType(str, Enum):
    INITIAL = "Initial"
    FOLLOW_UP = "Follow Up"

    @classmethod
    def from_label(cls, raw) -> "VisitType":
        """Map a spreadsheet label cell. Anything without 'follow' is Initial."""
        if "follow" in str(raw or "").lower():
            return cls.FOLLOW_UP
        return cls.INITIAL

    @classmethod
    def parse(cls, raw) -> "VisitType | None":
        """Strict parse for stored records and request bodies."""
        if raw is None:
            return None
        if isinstance(raw, VisitType):
            return raw
        text = str(raw).strip()
        if not text:
            return None
        compact = text.lower().replace("-", " ").replace("_", " ")
        compact = " ".join(compact.split())
        if compact == "initial":
            return cls.INITIAL
        if compact in {"follow up", "followup"}:
            return cls.FOLLOW_UP
        raise ValueError(f"Unknown visit type: {raw!r}")


# Initial sorts before Follow Up; None (no visit-type dimension) sorts first.
VISIT_TYPE_ORDER = {None: 0, VisitType.INITIAL: 0, VisitType.FOLLOW_UP: 1}


@dataclass
class ResourcePool:
    program: Program
    state: str
    visit_type: VisitType | None
    users: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "program": self.program.value,
            "state": self.state,
            "visit_type": self.visit_type.value if self.visit_type else None,
            "users": list(self.users),
        }


@dataclass(frozen=True)
class StateExclusion:
    program: Program
    state: str
    user: str
    visit_type: VisitType | None = None

    @property
    def user_key(self) -> str:
        return self.user.strip().lower()

    @classmethod
    def from_dict(cls, raw) -> "StateExclusion":
        """Build from a stored record. Raises ValueError when malformed."""
        if not isinstance(raw, dict):
            raise ValueError(f"Exclusion record must be an object, got {type(raw).__name__}")
        program = Program.from_param(raw.get("program"))
        if program is None:
            raise ValueError(f"Unknown program: {raw.get('program')!r}")
        state = raw.get("state")
        user = raw.get("user")
        if not isinstance(state, str) or not state.strip():
            raise ValueError("Exclusion record is missing 'state'")
        if not isinstance(user, str) or not user.strip():
            raise ValueError("Exclusion record is missing 'user'")
        visit_raw = raw.get("visitType", raw.get("visit_type"))
        return cls(
            program=program,
            state=state,
            user=user,
            visit_type=VisitType.parse(visit_raw),
        )

    def to_dict(self) -> dict:
        record = {
            "program": self.program.value,
            "state": self.state,
            "user": self.user,
        }
        if self.visit_type is not None:
            record["visitType"] = self.visit_type.value
        return record


@dataclass(frozen=True)
class ExclusionsData:
    """Server-provided defaults. Never mutated after load."""

    excluded_users: tuple[str, ...] = ()
    state_exclusions: tuple[StateExclusion, ...] = ()

    @classmethod
    def empty(cls) -> "ExclusionsData":
        return cls()
