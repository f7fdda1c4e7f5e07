"""Tests for the block builder."""

import pytest

from livenotes.models import Annotation, AnnotationBlock, Line
from livenotes.pipeline.blocks import BlockBuilder


def lines(*texts):
    return [Line(text=t) for t in texts]


class TestBlockBuilder:
    def test_four_lines_complete_one_block(self, session) -> None:
        builder = BlockBuilder(session, capacity=4)

        results = [builder.ingest(line) for line in lines("a", "b", "c", "d")]

        assert results[:3] == [None, None, None]
        completed = results[3]
        assert completed.id == 1
        assert [l.text for l in completed.lines] == ["a", "b", "c", "d"]
        assert session.blocks.entries == (completed,)

    def test_capacity_never_exceeded(self, session) -> None:
        builder = BlockBuilder(session, capacity=4)
        for i in range(11):
            builder.ingest(Line(text=f"line {i}"))

        blocks = session.blocks.blocks()
        assert [len(b.lines) for b in blocks] == [4, 4, 3]
        assert [b.id for b in blocks] == [1, 2, 3]

    def test_annotation_closes_the_open_block(self, session) -> None:
        builder = BlockBuilder(session, capacity=4)
        builder.ingest(Line(text="a"))
        session.blocks = session.blocks.with_annotation(1, "note")

        builder.ingest(Line(text="b"))

        entries = session.blocks.entries
        assert isinstance(entries[1], Annotation)
        assert isinstance(entries[2], AnnotationBlock)
        assert entries[2].id == 2
        assert len(entries[0].lines) == 1

    def test_new_block_after_completed_block_with_pending_annotation(self, session) -> None:
        builder = BlockBuilder(session, capacity=2)
        builder.ingest(Line(text="a"))
        first = builder.ingest(Line(text="b"))

        builder.ingest(Line(text="c"))
        session.blocks = session.blocks.with_annotation(first.id, "x")

        entries = session.blocks.entries
        assert [type(e).__name__ for e in entries] == ["AnnotationBlock", "Annotation", "AnnotationBlock"]
        assert entries[2].id == 2

    def test_ingest_pending_walks_from_cursor(self, session) -> None:
        builder = BlockBuilder(session, capacity=2)
        for line in lines("a", "b", "c"):
            session.append_line(line)

        completed = builder.ingest_pending()

        assert [b.id for b in completed] == [1]
        assert session.annotation_cursor == 3
        assert builder.ingest_pending() == []

        session.append_line(Line(text="d"))
        assert [b.id for b in builder.ingest_pending()] == [2]

    def test_invalid_capacity(self, session) -> None:
        with pytest.raises(ValueError):
            BlockBuilder(session, capacity=0)
