"""Playback scheduler: walks a plan one spoken step at a time.

WHY: Playback has to survive the learner pausing mid-sentence, stopping,
jumping to another record, and the speech engine failing or hanging.
All of that is easier to reason about when the plan is precomputed and
the scheduler is nothing more than a cursor plus a loop that speaks
whatever the cursor points at.

HOW: start() builds the plan and schedules _run() as an asyncio task.
_run() speaks plan[step_index], waits for the first of three things
(speech finished, an interrupt from pause/stop, or the watchdog), and
advances the cursor only when the step really completed. Commands
(pause/resume/stop/goto_*) only flip state, cancel speech and set the
interrupt event; they never touch step_index themselves.

State machine:
  IDLE ──start──► RUNNING ──pause──► PAUSED ──resume──► RUNNING
  RUNNING ──end of plan──► COMPLETED  (or stays RUNNING when auto-chaining)
  any ──stop──► IDLE
  RUNNING ──speech unavailable / TTS disabled──► IDLE

RULES:
- Commands must be called from the event-loop thread
- Only _run() writes step_index and active_segment_index
- stop() bumps the session token; a stale loop exits at its next check
- A paused loop polls every PAUSE_POLL_INTERVAL_S and never advances
- Interrupted steps are replayed on resume (same step_index)
- Per-step SpeechError is logged and counts as completion
- SpeechUnavailableError, or TTS switched off, ends the session as IDLE
- The watchdog firing counts as completion
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Dict, Optional

from recite.config import (
    PAUSE_POLL_INTERVAL_S,
    WATCHDOG_BASE_MS,
    WATCHDOG_MAX_S,
    WATCHDOG_MIN_S,
    WATCHDOG_MS_PER_CHAR,
)
from recite.core.checker import CheckState, is_recite_check_passed
from recite.core.models import Plan, Record, Settings, Step
from recite.core.plan import build_plan
from recite.speech.base import SpeechSynthesizer, SpeechUnavailableError
from recite.store.document import DocumentStore

logger = logging.getLogger(__name__)


class PlaybackConfigurationError(ValueError):
    """Playback cannot start or resume with the current configuration.

    Raised for disabled or unavailable TTS and for an empty record list.
    The scheduler state is unchanged when this is raised.
    """


class PlayerStatus(str, enum.Enum):
    """Lifecycle of one playback session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class PlayerState:
    """Everything the outside world may observe about playback."""

    status: PlayerStatus = PlayerStatus.IDLE
    current_record_id: Optional[str] = None
    main_record_id: Optional[str] = None
    plan: Plan = ()
    step_index: int = 0
    active_segment_index: Optional[int] = None
    review_mode: bool = False
    last_message: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.status in (PlayerStatus.RUNNING, PlayerStatus.PAUSED)

    @property
    def paused(self) -> bool:
        return self.status is PlayerStatus.PAUSED

    @property
    def current_step(self) -> Optional[Step]:
        if 0 <= self.step_index < len(self.plan):
            return self.plan[self.step_index]
        return None

    def to_dict(self) -> Dict[str, Any]:
        step = self.current_step
        return {
            "status": self.status.value,
            "running": self.running,
            "paused": self.paused,
            "current_record_id": self.current_record_id,
            "main_record_id": self.main_record_id,
            "step_index": self.step_index,
            "step_count": len(self.plan),
            "active_segment_index": self.active_segment_index,
            "review_mode": self.review_mode,
            "current_step": step.to_dict() if step is not None else None,
            "last_message": self.last_message,
        }


def watchdog_timeout(text: str, rate: float) -> float:
    """Seconds to wait for one utterance before giving up on it.

    Roughly 350 ms per character at normal speed plus a fixed margin,
    bounded to [WATCHDOG_MIN_S, WATCHDOG_MAX_S].
    """
    ms = round(len(text or "") * WATCHDOG_MS_PER_CHAR / max(0.1, rate) + WATCHDOG_BASE_MS)
    return min(WATCHDOG_MAX_S, max(WATCHDOG_MIN_S, ms / 1000.0))


class PlaybackScheduler:
    """Drives spoken playback of one record's plan at a time.

    Args:
        store: Record and settings store; the scheduler reads settings
            fresh before every step so live changes apply immediately.
        synthesizer: Speech backend used for every step.
        on_status: Optional callback receiving every status message.
        pause_poll_interval: Seconds between checks while paused.
    """

    def __init__(
        self,
        store: DocumentStore,
        synthesizer: SpeechSynthesizer,
        on_status: Optional[Callable[[str], None]] = None,
        pause_poll_interval: float = PAUSE_POLL_INTERVAL_S,
    ) -> None:
        self._store = store
        self._synth = synthesizer
        self._on_status = on_status
        self._pause_poll_interval = pause_poll_interval
        self._session = 0
        self._interrupt_count = 0
        self._task: Optional[asyncio.Task] = None
        self._interrupt: Optional[asyncio.Event] = None
        self.state = PlayerState()
        self.check_state = CheckState()

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def synthesizer(self) -> SpeechSynthesizer:
        return self._synth

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _report(self, message: str) -> None:
        self.state.last_message = message
        logger.info(message)
        if self._on_status is not None:
            self._on_status(message)

    def _tts_problem(self, settings: Settings) -> Optional[str]:
        if not settings.tts_enabled:
            return "Text-to-speech is disabled in settings"
        if not self._synth.available:
            return "No speech backend is available"
        return None

    def _interrupt_speech(self) -> None:
        self._interrupt_count += 1
        if self._interrupt is not None:
            self._interrupt.set()
        self._synth.cancel()

    def _activate_record(self, record: Record) -> None:
        if self.check_state.record_id != record.id:
            self.check_state.reset(record.id)

    def _plan_for(self, record: Record, settings: Settings) -> Plan:
        return build_plan(record, settings, self._store.previous(record.id))

    def _go_idle(self, message: Optional[str] = None) -> None:
        self._session += 1
        self.state = PlayerState(
            current_record_id=self.state.current_record_id,
            last_message=self.state.last_message,
        )
        if message:
            self._report(message)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, record_id: Optional[str] = None) -> PlayerState:
        """Start a new session and return immediately.

        Args:
            record_id: Record to study; defaults to the store's current
                record, then to the first record.

        Raises:
            PlaybackConfigurationError: TTS is off or unavailable, or
                there is no record to play.
            KeyError: record_id is not in the store.
        """
        settings = self._store.load_settings()
        problem = self._tts_problem(settings)
        if problem:
            raise PlaybackConfigurationError(problem)

        if record_id is not None:
            record = self._store.require(record_id)
        else:
            record = self._store.current()
            if record is None:
                records = self._store.list()
                record = records[0] if records else None
        if record is None:
            raise PlaybackConfigurationError("There are no records to play")

        loop = asyncio.get_running_loop()

        if self.state.running:
            self.stop()

        self._store.set_current(record.id)
        self._activate_record(record)

        self._session += 1
        session = self._session
        self._interrupt = asyncio.Event()
        self.state = PlayerState(
            status=PlayerStatus.RUNNING,
            current_record_id=record.id,
            main_record_id=record.id,
            plan=self._plan_for(record, settings),
        )
        self._report("Started playback for record {}".format(record.id))
        self._task = loop.create_task(self._run(session))
        return self.state

    def pause(self) -> bool:
        """Pause a running session; returns False when not running."""
        if self.state.status is not PlayerStatus.RUNNING:
            return False
        self.state.status = PlayerStatus.PAUSED
        self._interrupt_speech()
        self._report("Paused")
        return True

    def resume(self) -> bool:
        """Resume a paused session at the same step.

        Returns False when not paused.

        Raises:
            PlaybackConfigurationError: TTS was disabled while paused.
        """
        if self.state.status is not PlayerStatus.PAUSED:
            return False
        problem = self._tts_problem(self._store.load_settings())
        if problem:
            raise PlaybackConfigurationError(problem)
        if self._interrupt is not None:
            self._interrupt.clear()
        self.state.status = PlayerStatus.RUNNING
        self._report("Resumed")
        return True

    def stop(self) -> None:
        """Stop from any state and discard the plan."""
        was_active = self.state.running
        self._interrupt_speech()
        self._go_idle()
        if was_active:
            self._report("Stopped")

    def select_record(self, record_id: str) -> Record:
        """Stop playback and make record_id the current record."""
        record = self._store.require(record_id)
        self.stop()
        self._store.set_current(record.id)
        self.check_state.reset(record.id)
        self.state.current_record_id = record.id
        return record

    def goto_next(self) -> Optional[Record]:
        """Move to the next record; None when already at the last one.

        With forced checking enabled, a failed check is reported but the
        move still happens.
        """
        current_id = self._store.current_record_id
        target = self._store.next(current_id)
        if target is None:
            self._report("Already at the last record")
            return None
        settings = self._store.load_settings()
        if settings.force_recite_check:
            current = self._store.get(current_id)
            if not is_recite_check_passed(current, settings.sentence_delimiters):
                self._report("Recitation check has not passed for record {}".format(current_id))
        return self.select_record(target.id)

    def goto_previous(self) -> Optional[Record]:
        """Move to the previous record; None when already at the first one."""
        target = self._store.previous(self._store.current_record_id)
        if target is None:
            self._report("Already at the first record")
            return None
        return self.select_record(target.id)

    def snapshot(self) -> Dict[str, Any]:
        return self.state.to_dict()

    async def wait(self) -> None:
        """Wait until playback ends, following any restart of the loop task."""
        while self._task is not None:
            task = self._task
            await task
            if self._task is task:
                return

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _finish_plan(self, settings: Settings) -> bool:
        """Handle the end of the plan; True when playback continues."""
        main_id = self.state.main_record_id
        if settings.auto_play_next_qa and not settings.force_recite_check:
            nxt = self._store.next(main_id)
            if nxt is not None:
                self._store.set_current(nxt.id)
                self._activate_record(nxt)
                self.state.current_record_id = nxt.id
                self.state.main_record_id = nxt.id
                self.state.plan = self._plan_for(nxt, settings)
                self.state.step_index = 0
                self.state.active_segment_index = None
                self.state.review_mode = False
                self._report("Auto-playing next record {}".format(nxt.id))
                return True

        if settings.force_recite_check:
            record = self._store.get(main_id)
            if is_recite_check_passed(record, settings.sentence_delimiters):
                self._report("Playback finished; recitation check passed")
            else:
                self._report("Playback finished; recite the answer before moving on")
        else:
            self._report("Playback finished")

        self.state.status = PlayerStatus.COMPLETED
        self.state.plan = ()
        self.state.step_index = 0
        self.state.active_segment_index = None
        self.state.review_mode = False
        return False

    async def _speak(self, text: str, settings: Settings) -> bool:
        """Speak one step; False when pause/stop interrupted it.

        Completion, a swallowed SpeechError and the watchdog all return True.

        Raises:
            SpeechUnavailableError: The backend cannot speak at all.
        """
        interrupt = self._interrupt
        interrupts_before = self._interrupt_count
        speak_task = asyncio.ensure_future(self._synth.speak(
            text,
            rate=settings.rate,
            volume=settings.volume,
            voice=settings.tts_voice or None,
        ))
        waiters = {speak_task}
        interrupt_task = None
        if interrupt is not None:
            interrupt_task = asyncio.ensure_future(interrupt.wait())
            waiters.add(interrupt_task)

        timeout = watchdog_timeout(text, settings.rate)
        try:
            done, pending = await asyncio.wait(
                waiters,
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        # pause/stop may have ended speak() through cancel() and been undone already
        if self._interrupt_count != interrupts_before:
            return False
        if speak_task not in done:
            if interrupt_task is not None and interrupt_task in done:
                return False
            logger.warning("Speech watchdog fired after %.1fs; moving on", timeout)
            return True

        exc = speak_task.exception()
        if isinstance(exc, SpeechUnavailableError):
            raise exc
        if exc is not None:
            logger.warning("Speech failed for step: %s", exc)
        return True

    async def _run(self, session: int) -> None:
        try:
            while session == self._session and self.state.running:
                if self.state.paused:
                    await asyncio.sleep(self._pause_poll_interval)
                    continue

                settings = self._store.load_settings()
                if not settings.tts_enabled:
                    self._go_idle("Playback stopped: text-to-speech was disabled")
                    return

                step = self.state.current_step
                if step is None:
                    if self._finish_plan(settings):
                        continue
                    return

                if self._store.get(step.record_id) is None:
                    self.state.step_index += 1
                    continue

                index = self.state.step_index
                self.state.current_record_id = step.record_id
                self.state.active_segment_index = step.global_segment_index
                self.state.review_mode = step.review

                completed = True
                if step.text:
                    try:
                        completed = await self._speak(step.text, settings)
                    except SpeechUnavailableError as exc:
                        if session == self._session:
                            self._go_idle("Playback stopped: {}".format(exc))
                        return

                if session != self._session or not self.state.running:
                    return
                if self.state.paused or not completed:
                    continue
                if self.state.step_index != index:
                    continue
                self.state.step_index += 1
        except Exception:
            logger.exception("Playback loop failed")
            if session == self._session:
                self._go_idle("Playback stopped after an unexpected error")
