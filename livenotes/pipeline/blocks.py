"""
Groups incoming lines into fixed-capacity annotation blocks.
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from livenotes.models import Annotation, AnnotationBlock, Line
from livenotes.session import Session


class BlockBuilder:
    """Appends lines to the open block and reports blocks as they fill up."""

    def __init__(self, session: Session, capacity: int = 4):
        if capacity < 1:
            raise ValueError("Block capacity must be at least 1")
        self.session = session
        self.capacity = capacity

    def _accepts_line(self, entry) -> bool:
        if entry is None or isinstance(entry, Annotation):
            return False
        if isinstance(entry, AnnotationBlock):
            return not entry.is_full(self.capacity)
        raise TypeError(f"Unknown block entry: {entry!r}")

    def ingest(self, line: Line) -> Optional[AnnotationBlock]:
        """
        Add one line to the session's block sequence.

        Returns the block if this line completed it, otherwise None.
        """
        session = self.session
        blocks = session.blocks
        last = blocks.last

        if self._accepts_line(last):
            block = last.with_line(line)
            session.blocks = blocks.replace_last(block)
        else:
            block = AnnotationBlock(id=session.allocate_block_id(), lines=(line,))
            session.blocks = blocks.append(block)

        if block.is_full(self.capacity):
            logger.info({"event": "block_completed", "block_id": block.id, "epoch": session.epoch})
            return block
        return None

    def ingest_pending(self) -> List[AnnotationBlock]:
        """Ingest every session line past the annotation cursor."""
        completed = []
        while self.session.annotation_cursor < self.session.line_count:
            line = self.session.lines[self.session.annotation_cursor]
            self.session.annotation_cursor += 1
            block = self.ingest(line)
            if block is not None:
                completed.append(block)
        return completed
