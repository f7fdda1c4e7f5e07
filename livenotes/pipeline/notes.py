"""
Periodic note regeneration over the whole transcript.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional, Sequence

from loguru import logger

from livenotes.exceptions import NoteParseError, StreamInterrupted
from livenotes.llm_client import TextService
from livenotes.models import Line, Note, NoteAction
from livenotes.note_parser import parse_note
from livenotes.session import Session


class NoteTriggerPolicy:
    """
    Decides when the note is regenerated.

    Keeps no clock: decisions depend only on the line count, the session's
    ``processed_lines`` cursor and whether a regeneration is in flight.
    """

    def __init__(self, session: Session, batch_size: int = 8):
        if batch_size < 1:
            raise ValueError("Note batch size must be at least 1")
        self.session = session
        self.batch_size = batch_size
        self.in_flight = False

    def on_lines(self, total: int) -> bool:
        """Whether to regenerate now, while recording. Advances the cursor if so."""
        if self.in_flight:
            return False
        if total - self.session.processed_lines < self.batch_size:
            return False
        self.session.processed_lines = total
        return True

    def on_stop(self, total: int) -> NoteAction:
        """Decide the final action once recording has stopped."""
        if total > self.session.processed_lines:
            self.session.processed_lines = total
            return NoteAction.REGENERATE
        if self.session.note is not None:
            return NoteAction.SAVE
        return NoteAction.NONE

    def begin(self) -> None:
        self.in_flight = True

    def complete(self) -> None:
        self.in_flight = False

    def reset(self) -> None:
        self.in_flight = False


class NotePipeline:
    """Runs regenerations chosen by the policy, one at a time."""

    def __init__(self, session: Session, text_service: TextService,
                 policy: NoteTriggerPolicy, context: str):
        self.session = session
        self.text_service = text_service
        self.policy = policy
        self.context = context
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_lines(self) -> Optional[asyncio.Task]:
        """Evaluate the trigger and start a regeneration if it fires."""
        if not self.session.recording:
            return None
        if not self.policy.on_lines(self.session.line_count):
            return None
        epoch = self.session.epoch
        lines = self.session.transcript_snapshot()
        self.policy.begin()
        self._task = asyncio.create_task(self._run(epoch, lines), name=f"note-regen-{epoch}")
        return self._task

    async def _run(self, epoch: int, lines: Sequence[Line]) -> Optional[Note]:
        try:
            note = await self.regenerate(epoch, lines)
        finally:
            if self.session.is_current(epoch):
                self.policy.complete()
        if self.session.is_current(epoch):
            # Lines that piled up during the call get their turn now
            self.on_lines()
        return note

    async def regenerate(self, epoch: int, lines: Sequence[Line]) -> Optional[Note]:
        """
        Request a note over ``lines`` and publish it if ``epoch`` is current.

        Returns the published Note, or None when nothing was published.
        """
        transcript = " ".join(line.text for line in lines)
        start_time = time.time()
        parts = []
        stream = self.text_service.generate(self.context, transcript)
        try:
            async for fragment in stream:
                if not self.session.is_current(epoch):
                    logger.debug(f"Abandoning note regeneration for stale epoch {epoch}")
                    return None
                parts.append(fragment)
        except StreamInterrupted as e:
            logger.warning(f"Note stream interrupted, discarding {len(e.partial_text)} chars: {e.cause}")
            return None
        except Exception as e:
            logger.warning(f"Note regeneration failed: {e}")
            return None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        try:
            note = parse_note("".join(parts))
        except NoteParseError as e:
            logger.warning(f"Discarding note response: {e.message}")
            return None

        if not self.session.publish_note(epoch, note):
            logger.debug(f"Dropping note for stale epoch {epoch}")
            return None

        logger.info({
            "event": "note_regenerated",
            "epoch": epoch,
            "lines": len(lines),
            "topic": note.topic,
            "elapsed": round(time.time() - start_time, 3),
        })
        return note

    async def wait(self) -> None:
        """Wait for the in-flight regeneration, including any follow-up it starts."""
        while self.in_flight:
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def finalize(self) -> NoteAction:
        """
        Apply the stop-edge rule once recording has ended.

        In-flight work is awaited first so the final regeneration is never
        suppressed.
        """
        await self.wait()
        epoch = self.session.epoch
        action = self.policy.on_stop(self.session.line_count)
        if action is NoteAction.REGENERATE:
            self.policy.begin()
            try:
                await self.regenerate(epoch, self.session.transcript_snapshot())
            finally:
                self.policy.complete()
        logger.debug(f"Note finalize action: {action.value}")
        return action

    async def cancel(self) -> None:
        """Cancel any in-flight regeneration from the previous session."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.policy.reset()
