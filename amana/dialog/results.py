"""Result records exchanged at component boundaries.

Components return these instead of raising; the orchestrator switches on
``ActionError.kind``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INPUT_INVALID = "input_invalid"
    EXTRACTION_AMBIGUOUS = "extraction_ambiguous"
    CLASSIFIER_UNKNOWN = "classifier_unknown"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_PERMANENT = "backend_permanent"
    DUPLICATE = "duplicate"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True, slots=True)
class ActionError:
    kind: ErrorKind
    detail: str = ""
    slot: str | None = None  # payload key / slot most likely at fault

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "detail": self.detail, "slot": self.slot}


@dataclass(slots=True)
class ActionResult:
    """Normalized dispatcher outcome: ``{ok, id?, payload?, error?}``."""

    ok: bool
    id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    error: ActionError | None = None

    @classmethod
    def success(cls, id: str | None = None, payload: dict[str, Any] | None = None) -> ActionResult:
        return cls(ok=True, id=id, payload=payload or {})

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "", slot: str | None = None) -> ActionResult:
        return cls(ok=False, error=ActionError(kind=kind, detail=detail, slot=slot))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok}
        if self.id is not None:
            out["id"] = self.id
        if self.payload:
            out["payload"] = self.payload
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out
