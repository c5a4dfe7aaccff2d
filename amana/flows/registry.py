"""Slot schemas and the registry mapping intent tags to them.

A schema owns everything intent-specific: slot order, prompts, validation,
defaults, the completion predicate and the payload builder.  The
orchestrator only ever talks to schemas through this interface.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any

from amana.actions.commands import Command
from amana.nl.intent_engine import IntentTag
from amana.nl.parsers import format_time, is_valid_email, parse_hhmm

STAGE_PREFIX = "awaiting_"
STAGE_CONFIRMATION = "awaiting_confirmation"
STAGE_RETRY = "awaiting_retry"
STAGE_EXECUTING = "executing"


def stage_for(slot_name: str) -> str:
    return f"{STAGE_PREFIX}{slot_name}"


def slot_from_stage(stage: str | None) -> str | None:
    """``awaiting_summary`` -> ``summary``; None for control stages."""
    if not stage or not stage.startswith(STAGE_PREFIX):
        return None
    if stage in (STAGE_CONFIRMATION, STAGE_RETRY):
        return None
    return stage[len(STAGE_PREFIX):]


class SlotType(str, Enum):
    STRING = "string"
    DATE = "date"
    TIME = "time"
    EMAIL_LIST = "email_list"
    STRING_LIST = "string_list"
    INT = "int"


Validator = Callable[[Any, Mapping[str, Any]], str | None]
DefaultFn = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class SlotSpec:
    """One typed parameter of an intent."""

    name: str
    type: SlotType
    prompt: str
    required: bool = True
    ask: bool | None = None  # None: ask iff required
    invalid_hint: str = ""
    bounds: tuple[int, int] | None = None
    validator: Validator | None = None  # returns a hint when the value is refused
    default: DefaultFn | None = None
    parser: str | None = None  # deterministic parser name used by the extractor

    @property
    def asks(self) -> bool:
        return self.required if self.ask is None else self.ask

    @property
    def free_text(self) -> bool:
        return self.type is SlotType.STRING and self.parser is None

    @property
    def hint(self) -> str:
        return self.invalid_hint or self.prompt

    def coerce(self, value: Any) -> tuple[Any, str | None]:
        """Normalize *value* to its stored JSON form.

        Returns ``(value, None)`` or ``(None, hint)`` when the value does not
        fit the slot type or bounds.
        """
        if value is None:
            return None, self.hint
        try:
            coerced = _COERCERS[self.type](self, value)
        except (TypeError, ValueError):
            return None, self.hint
        if coerced is None:
            return None, self.hint
        return coerced, None


def _coerce_string(spec: SlotSpec, value: Any) -> str | None:
    if isinstance(value, (list, dict)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_date(spec: SlotSpec, value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value).strip()[:10]).isoformat()


def _coerce_time(spec: SlotSpec, value: Any) -> str | None:
    if isinstance(value, time):
        return format_time(value)
    parsed = parse_hhmm(str(value))
    return format_time(parsed) if parsed else None


def _coerce_email_list(spec: SlotSpec, value: Any) -> list[str] | None:
    items = [value] if isinstance(value, str) else list(value)
    raw = [str(v).strip() for v in items if str(v).strip()]
    emails: list[str] = []
    for item in raw:
        for part in item.replace(";", ",").split(","):
            part = part.strip()
            if is_valid_email(part) and part.lower() not in (e.lower() for e in emails):
                emails.append(part)
    if raw and not emails:
        return None
    return emails


def _coerce_string_list(spec: SlotSpec, value: Any) -> list[str]:
    items = [value] if isinstance(value, str) else list(value)
    out: list[str] = []
    for item in items:
        for part in str(item).split(","):
            part = part.strip().lstrip("#")
            if part and part not in out:
                out.append(part)
    return out


def _coerce_int(spec: SlotSpec, value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    number = int(value)
    if spec.bounds and not spec.bounds[0] <= number <= spec.bounds[1]:
        return None
    return number


_COERCERS: dict[SlotType, Callable[[SlotSpec, Any], Any]] = {
    SlotType.STRING: _coerce_string,
    SlotType.DATE: _coerce_date,
    SlotType.TIME: _coerce_time,
    SlotType.EMAIL_LIST: _coerce_email_list,
    SlotType.STRING_LIST: _coerce_string_list,
    SlotType.INT: _coerce_int,
}


@dataclass
class Assignment:
    """Outcome of merging extracted candidates into stored fields."""

    fields: dict[str, Any]
    accepted: list[str] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)  # slot -> hint


@dataclass(frozen=True)
class BuiltCommand:
    command: Command
    data: dict[str, Any]


@dataclass(frozen=True)
class IntentSchema:
    intent: IntentTag
    command: Command
    slots: tuple[SlotSpec, ...]
    data_builder: Callable[[Mapping[str, Any]], dict[str, Any]]
    requires_confirmation: bool = False
    immediate: bool = False  # runs on the first utterance when already complete

    @property
    def slot_names(self) -> list[str]:
        return [s.name for s in self.slots]

    def slot(self, name: str | None) -> SlotSpec | None:
        for spec in self.slots:
            if spec.name == name:
                return spec
        return None

    def restrict(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Drop keys that are not slots of this intent."""
        names = set(self.slot_names)
        return {k: v for k, v in fields.items() if k in names}

    def next_missing_slot(self, fields: Mapping[str, Any]) -> SlotSpec | None:
        """First slot that must be asked for: absent and not derivable."""
        for spec in self.slots:
            if not spec.asks or spec.name in fields:
                continue
            if spec.default is not None and spec.default(fields) is not None:
                continue
            return spec
        return None

    def with_defaults(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        out = dict(fields)
        for spec in self.slots:
            if spec.name in out or spec.default is None:
                continue
            value = spec.default(out)
            if value is not None:
                out[spec.name] = value
        return out

    def validate(self, fields: Mapping[str, Any]) -> dict[str, str]:
        """Hints for present values that fail their type or validator."""
        problems: dict[str, str] = {}
        for spec in self.slots:
            if spec.name not in fields:
                continue
            value, hint = spec.coerce(fields[spec.name])
            if hint is None and spec.validator is not None:
                hint = spec.validator(value, fields)
            if hint:
                problems[spec.name] = hint
        return problems

    def is_complete(self, fields: Mapping[str, Any]) -> bool:
        full = self.with_defaults(fields)
        if any(spec.required and spec.name not in full for spec in self.slots):
            return False
        return not self.validate(full)

    def build_command(self, fields: Mapping[str, Any]) -> BuiltCommand:
        return BuiltCommand(self.command, self.data_builder(self.with_defaults(fields)))

    def assign(
        self,
        fields: Mapping[str, Any],
        candidates: Mapping[str, Any],
        stage: str | None = None,
    ) -> Assignment:
        """Merge *candidates* into *fields*.

        Absent slots are set; a present slot is only replaced when it is the
        one being re-prompted.  Refused values never overwrite stored ones.
        """
        expected = slot_from_stage(stage)
        result = Assignment(fields=dict(fields))
        for spec in self.slots:
            if spec.name not in candidates:
                continue
            if spec.name in result.fields and spec.name != expected:
                continue
            value, hint = spec.coerce(candidates[spec.name])
            if hint is None and spec.validator is not None:
                hint = spec.validator(value, {**result.fields, spec.name: value})
            if hint:
                result.rejected[spec.name] = hint
                continue
            result.fields[spec.name] = value
            result.accepted.append(spec.name)
        return result


class FlowRegistry:
    """Maps each registered ``IntentTag`` to its schema."""

    def __init__(self, schemas: Iterable[IntentSchema] = ()) -> None:
        self._schemas: dict[IntentTag, IntentSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: IntentSchema) -> None:
        if schema.intent is IntentTag.NONE:
            raise ValueError("NONE cannot have a schema")
        self._schemas[schema.intent] = schema

    def get(self, intent: IntentTag | str | None) -> IntentSchema | None:
        tag = intent if isinstance(intent, IntentTag) else IntentTag.parse(intent)
        if tag is None:
            return None
        return self._schemas.get(tag)

    def __contains__(self, intent: object) -> bool:
        return self.get(intent) is not None  # type: ignore[arg-type]

    def __iter__(self):
        return iter(self._schemas.values())

    @property
    def intents(self) -> list[IntentTag]:
        return list(self._schemas)
