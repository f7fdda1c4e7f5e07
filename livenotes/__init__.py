"""
Live Lecture Notes - Main package.
"""

from livenotes.models import *
from livenotes.config import get_config, set_config, reset_config
from livenotes.llm_client import get_llm_client, reset_llm_client
from livenotes.note_parser import parse_note
from livenotes.recorder import RecordingController

__version__ = "1.0.0"
__all__ = [
    "get_config",
    "set_config",
    "reset_config",
    "get_llm_client",
    "reset_llm_client",
    "parse_note",
    "RecordingController",
]
