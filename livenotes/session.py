"""
Per-recording session state.

The session is the single owner of everything derived from one recording:
the captured lines, the cursors of both pipelines, the published block
sequence and note, and a generation epoch. Work started for an older epoch
must not publish into a newer session.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from loguru import logger

from livenotes.models import BlockSequence, Line, Note


class Session:
    """Mutable state for one recording episode."""

    def __init__(self):
        self.epoch = 0
        self.recording = False
        self.lines: List[Line] = []
        self.annotation_cursor = 0
        self.processed_lines = 0
        self.blocks = BlockSequence()
        self.note: Optional[Note] = None
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self._next_block_id = 1

    def reset(self) -> int:
        """Clear everything for a new recording and return the new epoch."""
        self.epoch += 1
        self.lines = []
        self.annotation_cursor = 0
        self.processed_lines = 0
        self.blocks = BlockSequence()
        self.note = None
        self.started_at = datetime.now()
        self.ended_at = None
        self._next_block_id = 1
        self.recording = True
        logger.debug(f"Session reset to epoch {self.epoch}")
        return self.epoch

    def end(self) -> None:
        """Stop recording; artifacts stay available for saving."""
        self.recording = False
        self.ended_at = datetime.now()

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def allocate_block_id(self) -> int:
        block_id = self._next_block_id
        self._next_block_id += 1
        return block_id

    def append_line(self, line: Line) -> int:
        """Append a captured line and return the new line count."""
        self.lines.append(line)
        return len(self.lines)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def transcript_snapshot(self) -> Tuple[Line, ...]:
        """Immutable copy of the lines captured so far."""
        return tuple(self.lines)

    def raw_transcription(self) -> str:
        return " ".join(line.text for line in self.lines)

    def publish_blocks(self, epoch: int, blocks: BlockSequence) -> bool:
        """Replace the block sequence unless ``epoch`` is stale."""
        if not self.is_current(epoch):
            return False
        self.blocks = blocks
        return True

    def publish_note(self, epoch: int, note: Note) -> bool:
        """Replace the note wholesale unless ``epoch`` is stale."""
        if not self.is_current(epoch):
            return False
        self.note = note
        return True
