"""
Recording controller: wires a line source, both pipelines and a store
together for one recording episode at a time.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Optional

from loguru import logger

from livenotes.config import AppConfig, get_config
from livenotes.exceptions import RecordingStateError, SourceUnavailable
from livenotes.line_source import LineSource
from livenotes.llm_client import TextService
from livenotes.models import (
    AnnotationBlock,
    ConversationRecord,
    Line,
    NoteRecord,
    SessionResult,
    SessionSnapshot,
)
from livenotes.pipeline import AnnotationQueue, BlockBuilder, NotePipeline, NoteTriggerPolicy
from livenotes.prompts import render_annotation_context, render_note_context
from livenotes.session import Session
from livenotes.storage.base import ConversationStore

EMPTY_CONVERSATION_SUMMARY = "Empty conversation"


def conversation_summary(blocks, max_chars: int = 100) -> str:
    """Preview of a conversation: the first block's text, cut to ``max_chars``."""
    first: Optional[AnnotationBlock] = next(iter(blocks.blocks()), None)
    if first is None:
        return EMPTY_CONVERSATION_SUMMARY
    text = first.text
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


class RecordingController:
    """Runs recordings: start, poll, stop and save."""

    def __init__(
        self,
        source: LineSource,
        text_service: TextService,
        store: ConversationStore,
        config: Optional[AppConfig] = None,
        user_id: Optional[str] = None,
    ):
        self.config = config or get_config()
        pipeline_cfg = self.config.pipeline
        self.source = source
        self.store = store
        self.user_id = user_id if user_id is not None else self.config.user_id

        self.session = Session()
        self.builder = BlockBuilder(self.session, pipeline_cfg.annotation_block_size)
        self.annotations = AnnotationQueue(
            self.session, text_service, render_annotation_context(pipeline_cfg)
        )
        self.policy = NoteTriggerPolicy(self.session, pipeline_cfg.note_batch_size)
        self.notes = NotePipeline(
            self.session, text_service, self.policy, render_note_context(pipeline_cfg)
        )

        self._poll_task: Optional[asyncio.Task] = None
        self._conversation_id: Optional[str] = None
        self._note_id: Optional[str] = None
        # Held for the whole of start, stop and save
        self._lock = asyncio.Lock()

    @property
    def recording(self) -> bool:
        return self.session.recording

    async def start(self) -> int:
        """
        Begin a new recording and return its epoch.

        A stop still finishing the previous recording is waited for first.

        Raises:
            RecordingStateError: if a recording is already running.
            SourceUnavailable: if the line source could not be started.
        """
        async with self._lock:
            if self.session.recording:
                raise RecordingStateError(recording=True)

            await self.source.start()

            await self.notes.cancel()
            await self.annotations.stop()
            epoch = self.session.reset()
            self.source.reset()
            self._conversation_id = None
            self._note_id = None

            self.annotations.start()
            self._poll_task = asyncio.create_task(self._poll_loop(), name=f"poll-{epoch}")
            logger.info(f"Recording started (epoch {epoch})")
            return epoch

    def ingest(self, line: Line) -> None:
        """Feed one new line through both pipelines."""
        if not self.session.recording:
            return
        self.session.append_line(line)
        for block in self.builder.ingest_pending():
            self.annotations.enqueue(block)
        self.notes.on_lines()

    async def poll_once(self) -> Optional[Line]:
        try:
            line = await self.source.poll()
        except SourceUnavailable as e:
            logger.warning(f"Line source poll failed, retrying next interval: {e.details.get('cause')}")
            return None
        if line is None or not self.session.recording:
            return None
        self.ingest(line)
        return line

    async def _poll_loop(self) -> None:
        interval = self.config.pipeline.poll_interval
        while self.session.recording:
            await self.poll_once()
            await asyncio.sleep(interval)

    async def _cancel_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def stop(self) -> SessionResult:
        """
        End the recording, finish outstanding work and save the results.

        Raises:
            RecordingStateError: if nothing is recording.
            PersistenceFailure: if saving failed; ``save()`` may be retried.
        """
        async with self._lock:
            if not self.session.recording:
                raise RecordingStateError(recording=False)

            try:
                await self.source.stop()
            except SourceUnavailable as e:
                logger.warning(f"Line source did not acknowledge stop: {e.details.get('cause')}")

            self.session.end()
            await self._cancel_polling()
            await self.annotations.drain(timeout=self.config.pipeline.drain_timeout)
            action = await self.notes.finalize()
            logger.info(
                f"Recording stopped (epoch {self.session.epoch}): "
                f"{self.session.line_count} lines, {len(self.session.blocks.blocks())} blocks, note action {action.value}"
            )
            return await self._save()

    async def save(self) -> SessionResult:
        """
        Persist the conversation and the note of the last recording.

        Records already saved by an earlier call are not created again.
        """
        async with self._lock:
            return await self._save()

    async def _save(self) -> SessionResult:
        session = self.session
        timestamp = (session.ended_at or datetime.now()).isoformat()

        if self._conversation_id is None and session.blocks.blocks():
            record = ConversationRecord(
                timestamp=timestamp,
                blocks=json.dumps(session.blocks.to_records(), ensure_ascii=False),
                summary=conversation_summary(session.blocks, self.config.pipeline.summary_preview_chars),
                user_id=self.user_id or "",
            )
            self._conversation_id = await self.store.create_conversation(record)
            logger.info({"event": "conversation_saved", "id": self._conversation_id, "epoch": session.epoch})

        if self._note_id is None and session.note is not None:
            record = NoteRecord.from_note(
                session.note,
                raw_transcription=session.raw_transcription(),
                timestamp=timestamp,
                user_id=self.user_id or "",
            )
            self._note_id = await self.store.create_note(record)
            logger.info({"event": "note_saved", "id": self._note_id, "epoch": session.epoch})

        return SessionResult(
            conversation_id=self._conversation_id,
            note_id=self._note_id,
            blocks=session.blocks,
            note=session.note,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            epoch=self.session.epoch,
            recording=self.session.recording,
            line_count=self.session.line_count,
            blocks=self.session.blocks,
            note=self.session.note,
            worker_state=self.annotations.worker.state,
            pending_blocks=self.annotations.pending,
        )

    async def close(self) -> None:
        await self._cancel_polling()
        await self.notes.cancel()
        await self.annotations.stop()
        await self.store.close()
