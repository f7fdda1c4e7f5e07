#!/usr/bin/env python3
"""
Run one recording session from the command line.

Polls the live transcription service, or replays a transcript file, until
the source runs dry or Ctrl-C is pressed; then stops, saves and prints the
annotated blocks and the final note.

Usage:
  python3 scripts/run_session.py --file "input/lecture.txt"
  python3 scripts/run_session.py --source-url http://localhost:8000 --duration 300
"""

import sys
import asyncio
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from livenotes.config import AppConfig
from livenotes.line_source import FileLineSource, HttpLineSource
from livenotes.llm_client import LLMClient
from livenotes.logging_utils import setup_logging
from livenotes.models import Annotation, AnnotationBlock
from livenotes.recorder import RecordingController
from livenotes.storage import create_store


def print_result(result) -> None:
    for entry in result.blocks.entries:
        if isinstance(entry, AnnotationBlock):
            print(f"\n[{entry.id}] {entry.text}")
        elif isinstance(entry, Annotation):
            print(f"    -> {entry.text}")
    if result.note:
        print("\n" + result.note.to_markdown())
    print(f"\nconversation={result.conversation_id} note={result.note_id}")


async def run(args) -> int:
    config = AppConfig.from_env()
    if args.source_url:
        config.source.base_url = args.source_url
    if args.poll_interval is not None:
        config.pipeline.poll_interval = args.poll_interval

    if args.file:
        source = FileLineSource(Path(args.file))
    else:
        source = HttpLineSource(config.source)

    controller = RecordingController(
        source=source,
        text_service=LLMClient(config.llm),
        store=create_store(config.storage),
        config=config,
        user_id=args.user_id,
    )

    await controller.start()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + args.duration if args.duration else None
    try:
        while True:
            await asyncio.sleep(config.pipeline.poll_interval)
            if isinstance(source, FileLineSource) and source.exhausted:
                logger.info("Transcript file fully replayed")
                break
            if deadline is not None and loop.time() >= deadline:
                break
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Interrupted, stopping recording")

    try:
        result = await controller.stop()
    finally:
        await controller.close()
    print_result(result)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a live lecture notes session")
    parser.add_argument("--file", type=str, default="", help="Replay this transcript file instead of polling")
    parser.add_argument("--source-url", type=str, default="", help="Transcription service base URL")
    parser.add_argument("--duration", type=float, default=0, help="Stop after this many seconds (0 = until Ctrl-C)")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls")
    parser.add_argument("--user-id", type=str, default=None, help="User id to save records under")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=str, default="", help="Optional rotating log file")
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file or None)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
