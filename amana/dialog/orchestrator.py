"""Per-conversation dialog state machine.

One ``handle()`` call is one cycle: lock the conversation, load it, route
the utterance (classify when idle, fill slots otherwise), maybe dispatch,
save, reply.  The stored ``(intent, stage)`` pair is the whole state; the
orchestrator keeps nothing in memory between cycles.

Dispatch happens at most once per completed task: ``stage`` is set to
``executing`` and saved before the dispatcher is called, and a cycle that
finds that marker ends the task instead of dispatching again.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from loguru import logger

from amana.actions.commands import PAYLOAD_SLOTS, Command
from amana.dialog import replies
from amana.dialog.results import ActionResult, ErrorKind
from amana.flows.registry import (
    STAGE_CONFIRMATION,
    STAGE_EXECUTING,
    STAGE_RETRY,
    FlowRegistry,
    IntentSchema,
    slot_from_stage,
    stage_for,
)
from amana.nl import parsers
from amana.nl.extractor import EntityExtractor
from amana.nl.intent_engine import Classifier
from amana.runtime.conversation_lock import ConversationLockTimeout
from amana.session.context_store import ContextStore, StoreError
from amana.session.conversation import ROLE_BOT, ROLE_USER, Conversation


class DialogPhase(str, Enum):
    IDLE = "IDLE"
    CLASSIFYING = "CLASSIFYING"
    FILLING = "FILLING"
    CONFIRMING = "CONFIRMING"
    EXECUTING = "EXECUTING"
    ENDED = "ENDED"


def phase_of(conv: Conversation) -> DialogPhase:
    """Phase implied by a stored conversation."""
    if conv.intent is None:
        return DialogPhase.IDLE
    if conv.stage == STAGE_EXECUTING:
        return DialogPhase.EXECUTING
    if conv.stage == STAGE_CONFIRMATION:
        return DialogPhase.CONFIRMING
    return DialogPhase.FILLING


class Dispatcher(Protocol):
    async def execute(self, command: Command | str, data: dict) -> ActionResult: ...


class Orchestrator:
    def __init__(
        self,
        store: ContextStore,
        classifier: Classifier,
        extractor: EntityExtractor,
        registry: FlowRegistry,
        dispatcher: Dispatcher,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.extractor = extractor
        self.registry = registry
        self.dispatcher = dispatcher

    async def handle(self, conversation_id: str | int, text: str) -> str:
        """Run one cycle for *text* and return the reply. Never raises."""
        cid = str(conversation_id)
        text = (text or "").strip()
        try:
            async with self.store.lock(cid):
                return await self._cycle(cid, text)
        except ConversationLockTimeout:
            logger.warning(f"Conversation {cid} busy; lock not acquired")
            return replies.BUSY
        except StoreError as e:
            logger.error(f"Context store unavailable for {cid}: {e}")
            return replies.GENERIC_ERROR
        except Exception as e:
            logger.exception(f"Dialog cycle failed for {cid}: {e}")
            return replies.GENERIC_ERROR

    async def _cycle(self, cid: str, text: str) -> str:
        conv = await self.store.load(cid)
        conv.add_history(ROLE_USER, text)
        reply = await self._step(conv, text)
        conv.add_history(ROLE_BOT, reply)
        await self.store.save(cid, conv)
        return reply

    async def _step(self, conv: Conversation, text: str) -> str:
        prefix = ""
        if phase_of(conv) is DialogPhase.EXECUTING:
            logger.warning(
                f"Stale executing marker for {conv.conversation_id} ({conv.intent}); "
                "ending task without dispatch"
            )
            conv.end_task()
            prefix = replies.STALE_EXECUTION + "\n\n"

        schema = self.registry.get(conv.intent) if conv.intent else None
        if conv.intent and schema is None:
            logger.warning(f"Unknown stored intent {conv.intent!r} for {conv.conversation_id}; resetting")
            conv.end_task()

        if parsers.is_cancel(text):
            if prefix:
                # The interrupted task was just ended above.
                return prefix + replies.CANCELLED
            if conv.is_idle:
                return replies.NOTHING_TO_CANCEL
            logger.info(f"Task {conv.intent} cancelled by user in {conv.conversation_id}")
            conv.end_task()
            return replies.CANCELLED

        if conv.is_idle:
            return prefix + await self._start(conv, text)

        conv.fields = schema.restrict(conv.fields)
        if conv.stage in (STAGE_CONFIRMATION, STAGE_RETRY):
            return await self._confirm(conv, schema, text)
        return await self._fill(conv, schema, text)

    # ------------------------------------------------------------------
    # IDLE / CLASSIFYING
    # ------------------------------------------------------------------

    async def _start(self, conv: Conversation, text: str) -> str:
        classification = await self.classifier.classify(text)
        schema = None if classification.is_none else self.registry.get(classification.intent)
        if schema is None:
            return classification.reply or replies.HELP

        logger.info(
            f"Intent {schema.intent.value} ({classification.confidence:.2f}) for {conv.conversation_id}"
        )
        if schema.immediate and not schema.requires_confirmation:
            extraction = await self.extractor.extract(schema, text)
            assignment = schema.assign({}, extraction.fields)
            fields = assignment.fields
            clean = not (extraction.rejected or extraction.ambiguous or assignment.rejected)
            if clean and schema.next_missing_slot(fields) is None and schema.is_complete(fields):
                return await self._execute(conv, schema, schema.with_defaults(fields), task=False)

        conv.begin_task(schema.intent.value, {})
        return await self._fill(conv, schema, text)

    # ------------------------------------------------------------------
    # FILLING
    # ------------------------------------------------------------------

    async def _fill(self, conv: Conversation, schema: IntentSchema, text: str) -> str:
        expected = slot_from_stage(conv.stage)
        extraction = await self.extractor.extract(schema, text, expected=expected, known=conv.fields)
        assignment = schema.assign(conv.fields, extraction.fields, conv.stage)
        conv.fields = assignment.fields

        rejected = {
            name: hint
            for name, hint in {**extraction.rejected, **assignment.rejected}.items()
            if name == expected or name not in conv.fields
        }
        if rejected:
            name = expected if expected in rejected else next(n for n in schema.slot_names if n in rejected)
            conv.stage = stage_for(name)
            return rejected[name]

        if extraction.ambiguous:
            name = next(n for n in schema.slot_names if n in extraction.ambiguous)
            conv.stage = stage_for(name)
            return replies.ambiguous(schema.slot(name), extraction.ambiguous[name])

        missing = schema.next_missing_slot(conv.fields)
        if missing is not None:
            conv.stage = stage_for(missing.name)
            return missing.prompt

        full = schema.with_defaults(conv.fields)
        problems = schema.validate(full)
        if problems:
            # A stored value went stale (e.g. the date is now in the past).
            name = next(n for n in schema.slot_names if n in problems)
            conv.fields.pop(name, None)
            conv.stage = stage_for(name)
            return problems[name]

        conv.fields = full
        if schema.requires_confirmation:
            conv.stage = STAGE_CONFIRMATION
            return replies.confirmation_prompt(schema, conv.fields)
        return await self._execute(conv, schema, conv.fields)

    # ------------------------------------------------------------------
    # CONFIRMING (also the retry question after a transient failure)
    # ------------------------------------------------------------------

    async def _confirm(self, conv: Conversation, schema: IntentSchema, text: str) -> str:
        answer = parsers.parse_yes_no(text)
        if answer is None:
            if conv.stage == STAGE_RETRY:
                return replies.retry_question()
            return replies.confirmation_prompt(schema, conv.fields)
        if answer is False:
            conv.end_task()
            return replies.CANCELLED
        return await self._execute(conv, schema, conv.fields)

    # ------------------------------------------------------------------
    # EXECUTING
    # ------------------------------------------------------------------

    async def _execute(self, conv: Conversation, schema: IntentSchema, fields: dict, *, task: bool = True) -> str:
        built = schema.build_command(fields)
        if task:
            conv.stage = STAGE_EXECUTING
            await self.store.save(conv.conversation_id, conv)

        result = await self.dispatcher.execute(built.command, built.data)

        if result.ok:
            conv.end_task()
            return replies.format_result(built.command, result, fields)

        error = result.error
        kind = error.kind if error else ErrorKind.BACKEND_PERMANENT
        detail = error.detail if error else ""
        logger.warning(f"{built.command.value} failed for {conv.conversation_id}: {kind.value} {detail}")

        if kind is ErrorKind.BACKEND_TRANSIENT:
            if not task:
                conv.begin_task(schema.intent.value, fields)
            conv.stage = STAGE_RETRY
            return replies.TRANSIENT

        if kind is ErrorKind.INPUT_INVALID and error and error.slot:
            spec = schema.slot(PAYLOAD_SLOTS.get(error.slot, error.slot))
            if spec is not None:
                if not task:
                    conv.begin_task(schema.intent.value, fields)
                conv.stage = stage_for(spec.name)
                return replies.input_invalid(spec, detail)

        conv.end_task()
        return replies.permanent_failure(built.command, detail)
