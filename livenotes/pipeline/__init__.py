"""
Annotation and note pipelines fed by a recording session.
"""

from livenotes.pipeline.annotation import AnnotationQueue, AnnotationWorker
from livenotes.pipeline.blocks import BlockBuilder
from livenotes.pipeline.notes import NotePipeline, NoteTriggerPolicy

__all__ = [
    "AnnotationQueue",
    "AnnotationWorker",
    "BlockBuilder",
    "NotePipeline",
    "NoteTriggerPolicy",
]
