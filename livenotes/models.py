"""
Data models for the live lecture notes pipeline.
"""

import json
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union, Any
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, validator

__all__ = [
    "WorkerState",
    "NoteAction",
    "Line",
    "AnnotationBlock",
    "Annotation",
    "BlockEntry",
    "BlockSequence",
    "Definition",
    "Note",
    "ConversationRecord",
    "ConversationSummary",
    "NoteRecord",
    "SessionSnapshot",
    "SessionResult",
]


class WorkerState(str, Enum):
    """State of the annotation worker."""
    IDLE = "idle"
    DRAINING = "draining"


class NoteAction(str, Enum):
    """What the note pipeline should do when recording stops."""
    REGENERATE = "regenerate"
    SAVE = "save"
    NONE = "none"


class Line(BaseModel):
    """A single transcribed line, immutable once captured."""
    text: str
    captured_at: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True

    @validator('text')
    def text_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Line text cannot be empty')
        return v.strip()


class AnnotationBlock(BaseModel):
    """A capacity-bounded group of consecutive lines awaiting elaboration."""
    kind: Literal["block"] = "block"
    id: int
    lines: Tuple[Line, ...] = ()
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True

    @property
    def text(self) -> str:
        """Line texts joined in order, as sent to the text service."""
        return " ".join(line.text for line in self.lines)

    def is_full(self, capacity: int) -> bool:
        return len(self.lines) >= capacity

    def with_line(self, line: Line) -> 'AnnotationBlock':
        """Return a copy of this block with one more line."""
        return AnnotationBlock(
            id=self.id,
            lines=self.lines + (line,),
            created_at=self.created_at,
        )


class Annotation(BaseModel):
    """Streamed elaboration attached to exactly one block."""
    kind: Literal["annotation"] = "annotation"
    for_id: int
    text: str = ""

    class Config:
        frozen = True


BlockEntry = Annotated[Union[AnnotationBlock, Annotation], Field(discriminator="kind")]


class BlockSequence(BaseModel):
    """
    Ordered, immutable snapshot of blocks and their annotations.

    Every "mutation" returns a new sequence; readers holding an old snapshot
    are never affected.
    """
    entries: Tuple[BlockEntry, ...] = ()

    class Config:
        frozen = True

    @property
    def last(self) -> Optional[Union[AnnotationBlock, Annotation]]:
        return self.entries[-1] if self.entries else None

    def blocks(self) -> List[AnnotationBlock]:
        return [e for e in self.entries if isinstance(e, AnnotationBlock)]

    def annotations(self) -> List[Annotation]:
        return [e for e in self.entries if isinstance(e, Annotation)]

    def find_block(self, block_id: int) -> int:
        """Index of the block with ``block_id``, or -1."""
        for idx, entry in enumerate(self.entries):
            if isinstance(entry, AnnotationBlock):
                if entry.id == block_id:
                    return idx
            elif isinstance(entry, Annotation):
                continue
            else:
                raise TypeError(f"Unknown block entry: {entry!r}")
        return -1

    def annotation_for(self, block_id: int) -> Optional[Annotation]:
        idx = self.find_block(block_id)
        if idx < 0 or idx + 1 >= len(self.entries):
            return None
        following = self.entries[idx + 1]
        if isinstance(following, Annotation) and following.for_id == block_id:
            return following
        return None

    def append(self, entry: Union[AnnotationBlock, Annotation]) -> 'BlockSequence':
        return BlockSequence(entries=self.entries + (entry,))

    def replace_last(self, entry: Union[AnnotationBlock, Annotation]) -> 'BlockSequence':
        if not self.entries:
            raise IndexError("Cannot replace the last entry of an empty sequence")
        return BlockSequence(entries=self.entries[:-1] + (entry,))

    def with_annotation(self, block_id: int, text: str) -> 'BlockSequence':
        """
        Publish ``text`` as the annotation of ``block_id``.

        Replaces the annotation directly after the block if there is one,
        otherwise inserts a new one right after the block.
        """
        idx = self.find_block(block_id)
        if idx < 0:
            raise KeyError(f"Block {block_id} is not in the sequence")
        head = self.entries[:idx + 1]
        tail = self.entries[idx + 1:]
        annotation = Annotation(for_id=block_id, text=text)
        if tail and isinstance(tail[0], Annotation) and tail[0].for_id == block_id:
            tail = tail[1:]
        return BlockSequence(entries=head + (annotation,) + tail)

    def to_records(self) -> List[Dict[str, Any]]:
        """Plain dicts in the stored conversation shape."""
        records: List[Dict[str, Any]] = []
        for entry in self.entries:
            if isinstance(entry, AnnotationBlock):
                records.append({
                    "type": "trans",
                    "id": entry.id,
                    "lines": [
                        {"text": line.text, "timestamp": line.captured_at.strftime("%H:%M:%S")}
                        for line in entry.lines
                    ],
                    "createdAt": entry.created_at.strftime("%H:%M:%S"),
                })
            elif isinstance(entry, Annotation):
                records.append({"type": "ai", "forId": entry.for_id, "text": entry.text})
            else:
                raise TypeError(f"Unknown block entry: {entry!r}")
        return records


class Definition(BaseModel):
    """A term and its definition."""
    term: str
    definition: str = ""

    def to_record(self) -> Dict[str, str]:
        return {"term": self.term, "def": self.definition}


class Note(BaseModel):
    """Structured notes synthesized from the whole transcript."""
    topic: str
    key_concepts: List[str] = Field(default_factory=list)
    bullet_notes: List[str] = Field(default_factory=list)
    definitions: List[Definition] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    summary: str

    class Config:
        frozen = True

    def to_markdown(self) -> str:
        """Render the note as markdown for export."""
        lines = [f"# {self.topic}\n"]

        lines.append("## Key Concepts")
        for concept in self.key_concepts:
            lines.append(f"- {concept}")
        lines.append("")

        lines.append("## Bullet Notes")
        for note in self.bullet_notes:
            lines.append(f"- {note}")
        lines.append("")

        lines.append("## Important Definitions")
        for d in self.definitions:
            lines.append(f"- **{d.term}**: {d.definition}" if d.definition else f"- **{d.term}**")
        lines.append("")

        lines.append("## Questions to Explore")
        for q in self.questions:
            lines.append(f"- {q}")
        lines.append("")

        lines.append("## Summary")
        lines.append(self.summary)

        return "\n".join(lines)


class ConversationRecord(BaseModel):
    """A finalized conversation as stored."""
    id: Optional[str] = None
    timestamp: str
    blocks: str  # JSON encoded block records
    summary: str
    user_id: Optional[str] = None

    def decoded_blocks(self) -> List[Dict[str, Any]]:
        return json.loads(self.blocks) if self.blocks else []


class ConversationSummary(BaseModel):
    """List view of a stored conversation."""
    id: str
    timestamp: str
    summary: str


class NoteRecord(BaseModel):
    """A finalized note as stored."""
    id: Optional[str] = None
    topic: str
    key_concepts: List[str] = Field(default_factory=list)
    bullet_notes: List[str] = Field(default_factory=list)
    definitions: str = "[]"  # JSON encoded [{"term", "def"}]
    questions: List[str] = Field(default_factory=list)
    summary: str
    raw_transcription: str = ""
    timestamp: str
    user_id: Optional[str] = None

    @classmethod
    def from_note(cls, note: Note, raw_transcription: str, timestamp: str,
                  user_id: Optional[str] = None) -> 'NoteRecord':
        return cls(
            topic=note.topic,
            key_concepts=list(note.key_concepts),
            bullet_notes=list(note.bullet_notes),
            definitions=json.dumps([d.to_record() for d in note.definitions], ensure_ascii=False),
            questions=list(note.questions),
            summary=note.summary,
            raw_transcription=raw_transcription,
            timestamp=timestamp,
            user_id=user_id,
        )

    def to_note(self) -> Note:
        defs = json.loads(self.definitions) if self.definitions else []
        return Note(
            topic=self.topic,
            key_concepts=self.key_concepts,
            bullet_notes=self.bullet_notes,
            definitions=[Definition(term=d.get("term", ""), definition=d.get("def", "")) for d in defs],
            questions=self.questions,
            summary=self.summary,
        )


class SessionSnapshot(BaseModel):
    """Read-only view of the current recording session."""
    epoch: int
    recording: bool
    line_count: int
    blocks: BlockSequence
    note: Optional[Note] = None
    worker_state: WorkerState = WorkerState.IDLE
    pending_blocks: int = 0


class SessionResult(BaseModel):
    """Outcome of stopping a recording."""
    conversation_id: Optional[str] = None
    note_id: Optional[str] = None
    blocks: BlockSequence = Field(default_factory=BlockSequence)
    note: Optional[Note] = None
