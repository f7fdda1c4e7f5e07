"""
Parser turning a free-text note response into a typed Note.

The response is read line by line. A header line opens one of six fixed
sections; a section's body runs until a blank line, the next header, or
(for the summary) the end of the text. Missing or empty sections fail the
whole parse so a partially-filled Note is never produced.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple

from livenotes.exceptions import NoteParseError
from livenotes.models import Definition, Note


class Section(str, Enum):
    """Section headers, in the order they are requested."""
    TOPIC = "Lecture Topic"
    KEY_CONCEPTS = "Key Concepts"
    BULLET_NOTES = "Bullet Notes"
    DEFINITIONS = "Important Definitions"
    QUESTIONS = "Questions to Explore"
    SUMMARY = "Summary"


LIST_SECTIONS = (Section.KEY_CONCEPTS, Section.BULLET_NOTES, Section.DEFINITIONS, Section.QUESTIONS)

# Leading bullet markers and numbering stripped from list items. A marker
# needs trailing whitespace except → and ❓, which are never part of content.
_ITEM_PREFIX = re.compile(r"^(?:[-*•→❓️–—]+\s+|[→❓️]+|\d+[.)]\s+)")
_FENCE = re.compile(r"^\s*```")


def _match_header(line: str) -> Optional[Tuple[Section, str]]:
    """Return the section a header line opens and any text after its colon."""
    candidate = line.strip().lstrip("#>").strip().lstrip("*_").strip()
    lowered = candidate.lower()
    for section in Section:
        title = section.value.lower()
        if not lowered.startswith(title):
            continue
        rest = candidate[len(title):].lstrip("*_")
        if not rest.startswith(":"):
            continue
        remainder = rest[1:].strip().strip("*_").strip()
        return section, remainder
    return None


def _split_sections(text: str) -> Dict[Section, List[str]]:
    bodies: Dict[Section, List[str]] = {}
    current: Optional[Section] = None

    for line in text.split("\n"):
        if _FENCE.match(line):
            continue

        header = _match_header(line)
        if header is not None:
            section, remainder = header
            if section in bodies:
                # Repeated header: the first occurrence wins
                current = None
                continue
            current = section
            bodies[section] = [remainder] if remainder else []
            continue

        if current is None:
            continue

        if not line.strip():
            if current is Section.SUMMARY:
                bodies[current].append("")
            elif bodies[current]:
                current = None
            continue

        bodies[current].append(line)

    return bodies


def _clean_item(line: str) -> str:
    return _ITEM_PREFIX.sub("", line.strip(), count=1).strip()


def _split_items(body: List[str]) -> List[str]:
    items = []
    for line in body:
        item = _clean_item(line)
        if item:
            items.append(item)
    return items


def _split_definition(item: str) -> Optional[Definition]:
    term, _, definition = item.partition(":")
    term = term.strip().strip("*_").strip()
    if not term:
        return None
    return Definition(term=term, definition=definition.strip())


def parse_note(raw: str) -> Note:
    """
    Parse a note response.

    Raises:
        NoteParseError: if any of the six sections is missing or empty.
    """
    text = (raw or "").replace("\r\n", "\n").replace("\r", "\n")
    bodies = _split_sections(text)

    topic = "\n".join(bodies.get(Section.TOPIC, [])).strip()
    summary = "\n".join(bodies.get(Section.SUMMARY, [])).strip()
    lists = {section: _split_items(bodies.get(section, [])) for section in LIST_SECTIONS}
    definitions = [d for d in map(_split_definition, lists[Section.DEFINITIONS]) if d is not None]

    missing = []
    for section in Section:
        if section is Section.TOPIC:
            empty = not topic
        elif section is Section.SUMMARY:
            empty = not summary
        elif section is Section.DEFINITIONS:
            empty = not definitions
        else:
            empty = not lists[section]
        if empty:
            missing.append(section.value)

    if missing:
        raise NoteParseError(missing)

    return Note(
        topic=topic,
        key_concepts=lists[Section.KEY_CONCEPTS],
        bullet_notes=lists[Section.BULLET_NOTES],
        definitions=definitions,
        questions=lists[Section.QUESTIONS],
        summary=summary,
    )
