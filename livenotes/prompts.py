"""
Prompt templates for the annotation and note pipelines.

Templates are Jinja2 so they can be overridden from files named in
configuration, the same way analyzer prompts are loaded.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import jinja2
from loguru import logger

from livenotes.config import PipelineConfig
from livenotes.note_parser import Section

ANNOTATION_TEMPLATE = (
    "You are an assistant helping students during a class by explaining lecture "
    "transcriptions. Give answers in {{ sentences }} sentences."
)

NOTE_TEMPLATE = """\
You are an AI note-taking assistant. Given the following lecture transcription, generate structured notes in this exact format:

{{ headers.topic }}:
[Detect topic]

{{ headers.key_concepts }}:
- concept 1
- concept 2
...

{{ headers.bullet_notes }}:
- quick takeaway 1
- quick takeaway 2
...

{{ headers.definitions }}:
→ Term 1: Definition 1
→ Term 2: Definition 2
...

{{ headers.questions }}:
❓ Question 1
❓ Question 2

{{ headers.summary }}:
[Give a 1-2 sentence summary of the entire content.]

Separate sections with a blank line. Only output the formatted notes (no raw transcript).
"""


def _load_template(path: Optional[Path], default: str) -> jinja2.Template:
    if path:
        try:
            content = Path(path).read_text(encoding="utf-8")
            logger.debug(f"Loaded prompt template from {path}")
            return jinja2.Template(content)
        except OSError as e:
            logger.warning(f"Failed to read prompt template {path}, using default: {e}")
    return jinja2.Template(default)


def render_annotation_context(config: PipelineConfig, **extra: Any) -> str:
    """Fixed context string sent with every block."""
    template = _load_template(config.annotation_prompt_file, ANNOTATION_TEMPLATE)
    return template.render(sentences=config.annotation_sentences, **extra).strip()


def render_note_context(config: PipelineConfig, **extra: Any) -> str:
    """Format instructions sent with every whole-transcript note request."""
    headers = {
        "topic": Section.TOPIC.value,
        "key_concepts": Section.KEY_CONCEPTS.value,
        "bullet_notes": Section.BULLET_NOTES.value,
        "definitions": Section.DEFINITIONS.value,
        "questions": Section.QUESTIONS.value,
        "summary": Section.SUMMARY.value,
    }
    template = _load_template(config.note_prompt_file, NOTE_TEMPLATE)
    return template.render(headers=headers, **extra).strip()
