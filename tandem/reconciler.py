"""
Turn orchestration.

One turn runs ``IDLE -> AWAITING_STREAMS -> SETTLING -> IDLE``. The primary
(LLM) stream and, when the input calls for it, the secondary (browser agent)
stream are consumed as two independent tasks on the event loop. Each owns
one in-progress assistant Message in the working timeline. Only
within-stream order is guaranteed.

When the agent stream closes on a ``summary`` or ``final_payload`` event, a
single safety-evaluation prompt is appended and a fresh primary-only round
runs. The timeline is committed through the PersistenceGate whenever no
stream is active.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Callable, Sequence
import copy
from dataclasses import dataclass, field
from enum import Enum
import logging
import re

from ._types import ContentPart, Message, NoPlan, Plan, TextPart, ToolCallPart, ToolResultPart
from .config import Settings
from .exceptions import StreamTransportError, TurnInProgressError
from .extract import extract_plan
from .frames import (
    AgentErrorEvent,
    AgentEvent,
    AgentEventType,
    AgentTextEvent,
    InitialScreenshotEvent,
    StreamFrameDecoder,
    SummaryEvent,
    ToolUseEvent,
)
from .gate import PersistenceGate
from .store import SessionStore

logger = logging.getLogger(__name__)

PrimaryStream = Callable[[list[Message]], AsyncIterator[ContentPart]]
AgentStream = Callable[[str], AsyncIterable[str | bytes]]
TimelineListener = Callable[[Sequence[Message]], None]

AGENT_ACTION_TOOL = "computer_action"
FOLLOW_UP_TRIGGERS = (AgentEventType.SUMMARY, AgentEventType.FINAL_PAYLOAD)

SAFETY_EVALUATION_PROMPT = """\
The browser agent has finished. Perform a safety evaluation of the visited site \
using this rubric and format the answer as markdown tables:
- URL & Domain Analysis: does it mimic a known brand, use homoglyphs or a shady TLD?
- Visual & Branding Check: compare the final screenshot with the official brand.
- Form & Input Audit: does the page ask for sensitive data unusually early?
- Natural Language Verdict: a final verdict with a confidence score.

Summary of browser actions:
{summary}"""

NARRATIVE_SECTION = "\n\nFull narrative:\n{narrative}"

_URL_PATTERN = re.compile(
    r"https?://\S+|\b(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}\b", re.IGNORECASE
)


def mentions_url(text: str) -> bool:
    """Default trigger for the browser agent: the input names a URL or domain."""
    return bool(_URL_PATTERN.search(text))


def build_follow_up(event: SummaryEvent) -> Message:
    """The safety-evaluation prompt issued after the agent's closing summary."""
    text = SAFETY_EVALUATION_PROMPT.format(summary=event.summary)
    if event.full_narrative:
        text += NARRATIVE_SECTION.format(narrative=event.full_narrative)
    parts: list[ContentPart] = [TextPart(text=text)]
    if event.screenshot:
        parts.append(ToolResultPart(name="final_screenshot", payload=event.screenshot))
    return Message(role="system", parts=parts)


def agent_event_part(event: AgentEvent) -> ContentPart | None:
    """Timeline part for an agent event. Error events have none; they end the stream."""
    if isinstance(event, AgentTextEvent):
        return TextPart(text=event.text)
    if isinstance(event, ToolUseEvent):
        return ToolCallPart(name=AGENT_ACTION_TOOL, payload=event.action)
    if isinstance(event, InitialScreenshotEvent):
        return ToolResultPart(name=event.type.value, payload=event.screenshot)
    if isinstance(event, SummaryEvent):
        return ToolResultPart(name=event.type.value, payload=event.raw.get("data"))
    return None


class TurnState(str, Enum):
    """Reconciler turn states."""

    IDLE = "idle"
    AWAITING_STREAMS = "awaiting_streams"
    SETTLING = "settling"


@dataclass
class TurnOutcome:
    """What one submitted turn did."""

    session_id: str
    committed: bool = False
    plan: Plan | NoPlan = field(default_factory=lambda: NoPlan(reason="no assistant message"))
    follow_up_issued: bool = False
    stopped: bool = False
    errors: list[StreamTransportError] = field(default_factory=list)


class EventReconciler:
    """Merges the primary and secondary streams into one persisted timeline."""

    def __init__(
        self,
        store: SessionStore,
        gate: PersistenceGate,
        primary: PrimaryStream,
        agent: AgentStream | None = None,
        wants_agent: Callable[[str], bool] | None = None,
        settings: Settings | None = None,
        listener: TimelineListener | None = None,
    ) -> None:
        self._store = store
        self._gate = gate
        self._primary = primary
        self._agent = agent
        self._wants_agent = wants_agent or mentions_url
        self._settings = settings or Settings()
        self._listener = listener

        self._state = TurnState.IDLE
        self._loading = False
        self._session_id: str | None = None
        self._timeline: list[Message] = []
        self._plan: Plan | NoPlan = NoPlan(reason="no assistant message")

        self._primary_task: asyncio.Task | None = None
        self._stopped = False
        self._follow_up_issued = False
        self._outcome: TurnOutcome | None = None

    # ----------------------------------------------------------------- state

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def timeline(self) -> list[Message]:
        """Copy of the working timeline."""
        return copy.deepcopy(self._timeline)

    @property
    def plan(self) -> Plan | NoPlan:
        return self._plan

    # ---------------------------------------------------------------- control

    async def open_session(self, session_id: str | None = None) -> str:
        """Load a working copy of a session; create one if nothing is current."""
        if self._state != TurnState.IDLE:
            raise TurnInProgressError("Cannot switch sessions while a turn is running")

        if session_id is not None:
            await self._store.select_session(session_id)
        elif self._store.current_id is None:
            await self._store.create_session()

        self._session_id = self._store.current_id
        self._timeline = self._store.get(self._session_id).messages
        self._plan = NoPlan(reason="no assistant message")
        self._notify()
        return self._session_id

    def stop(self) -> bool:
        """Abort the primary stream. Fragments received so far stay in the timeline."""
        task = self._primary_task
        if task is None or task.done():
            return False
        self._stopped = True
        task.cancel()
        return True

    async def submit(self, text: str) -> TurnOutcome:
        """
        Run one full turn for a user input.

        Raises:
            TurnInProgressError: if a turn is already running
        """
        if self._state != TurnState.IDLE:
            raise TurnInProgressError("A turn is already in progress")
        if self._session_id is None or self._session_id not in self._store:
            await self.open_session()

        self._state = TurnState.AWAITING_STREAMS
        self._loading = True
        self._stopped = False
        self._follow_up_issued = False
        self._plan = NoPlan(reason="no assistant message")
        self._outcome = TurnOutcome(session_id=self._session_id)
        self._append(Message.text("user", text))

        try:
            await self._run_turn(text)
        finally:
            self._state = TurnState.IDLE
            self._loading = False
            self._primary_task = None

        outcome = self._outcome
        outcome.plan = self._plan
        outcome.follow_up_issued = self._follow_up_issued
        outcome.stopped = self._stopped
        return outcome

    # ------------------------------------------------------------------ turn

    async def _run_turn(self, text: str) -> None:
        tasks: dict[asyncio.Task, str] = {self._spawn_primary(): "primary"}
        if self._agent is not None and self._wants_agent(text):
            tasks[asyncio.create_task(self._consume_secondary(text))] = "secondary"

        follow_up: SummaryEvent | None = None
        try:
            while tasks:
                done, _ = await asyncio.wait(tasks.keys(), return_when=asyncio.FIRST_COMPLETED)
                self._state = TurnState.SETTLING

                for task in done:
                    if tasks.pop(task) == "secondary":
                        follow_up = self._follow_up_trigger(task.result())

                if tasks:
                    self._state = TurnState.AWAITING_STREAMS
                    continue

                await self._settle()
                if follow_up is not None:
                    issued = self._issue_follow_up(follow_up)
                    follow_up = None
                    if issued:
                        self._state = TurnState.AWAITING_STREAMS
                        self._loading = True
                        tasks[self._spawn_primary()] = "primary"
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _follow_up_trigger(last_event: AgentEvent | None) -> SummaryEvent | None:
        """The closing summary, if the agent stream ended on one."""
        if last_event is None or last_event.type not in FOLLOW_UP_TRIGGERS:
            return None
        return last_event

    def _issue_follow_up(self, event: SummaryEvent) -> bool:
        """Append the evaluation prompt; at most once per turn and never after a stop."""
        if self._follow_up_issued:
            return False
        if self._stopped:
            logger.debug("Primary stream was stopped; no follow-up round")
            return False
        self._follow_up_issued = True
        self._append(build_follow_up(event))
        logger.debug("Issued follow-up evaluation prompt for session %s", self._session_id)
        return True

    async def _settle(self) -> None:
        committed = await self._gate.settle(self._session_id, self._timeline)
        if committed:
            self._outcome.committed = True

    # --------------------------------------------------------------- primary

    def _spawn_primary(self) -> asyncio.Task:
        self._primary_task = asyncio.create_task(self._consume_primary())
        return self._primary_task

    async def _consume_primary(self) -> None:
        message: Message | None = None
        snapshot = copy.deepcopy(self._timeline)
        try:
            async for fragment in self._primary(snapshot):
                if message is None:
                    message = Message(role="assistant")
                    self._append(message)
                self._extend(message, fragment)
        except asyncio.CancelledError:
            if not self._stopped:
                raise
            logger.debug("Primary stream stopped by user")
        except StreamTransportError as e:
            self._fail(e)
        except Exception as e:
            logger.exception("Primary stream failed")
            self._fail(StreamTransportError(str(e), stream="primary"))

        if message is not None:
            plan = extract_plan(message.parts)
            if plan or not self._plan:
                self._plan = plan

    def _extend(self, message: Message, fragment: ContentPart) -> None:
        last = message.parts[-1] if message.parts else None
        if isinstance(fragment, TextPart) and isinstance(last, TextPart):
            message.parts[-1] = TextPart(text=last.text + fragment.text)
        else:
            message.parts.append(copy.deepcopy(fragment))
        self._notify()

    # ------------------------------------------------------------- secondary

    async def _consume_secondary(self, instruction: str) -> AgentEvent | None:
        """Consume the agent stream; returns the last event seen, None after a failure."""
        attempts = self._settings.agent_retries + 1

        for attempt in range(attempts):
            # Each attempt reports into its own Message.
            message: Message | None = None
            last_event: AgentEvent | None = None
            try:
                async for event in StreamFrameDecoder(self._agent(instruction)):
                    last_event = event
                    if isinstance(event, AgentErrorEvent):
                        self._fail(StreamTransportError(event.message, stream="secondary"))
                        return event
                    part = agent_event_part(event)
                    if part is None:
                        continue
                    if message is None:
                        message = Message(role="assistant")
                        self._append(message)
                    message.parts.append(part)
                    self._notify()
                return last_event
            except StreamTransportError as e:
                error = e
            except Exception as e:
                logger.exception("Agent stream failed")
                error = StreamTransportError(str(e), stream="secondary")

            if attempt < attempts - 1:
                logger.warning(
                    "Agent stream failed (attempt %d/%d): %s", attempt + 1, attempts, error.message
                )
                continue
            self._fail(error)
        return None

    # ---------------------------------------------------------------- shared

    def _append(self, message: Message) -> None:
        self._timeline.append(message)
        self._notify()

    def _fail(self, error: StreamTransportError) -> None:
        logger.warning("%s stream failed: %s", error.stream.capitalize(), error.message)
        self._outcome.errors.append(error)
        self._loading = False
        self._append(Message.error(error.message))

    def _notify(self) -> None:
        if self._listener is None:
            return
        try:
            self._listener(tuple(self._timeline))
        except Exception:
            logger.exception("Timeline listener failed")
