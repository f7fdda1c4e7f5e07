"""
Single-consumer annotation queue.

Completed blocks are queued in FIFO order and elaborated one at a time by a
single worker task. Each fragment of the streamed response is merged into
the session's block sequence as soon as it arrives, so readers see the
annotation grow in place.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional, Tuple

from loguru import logger

from livenotes.llm_client import TextService
from livenotes.models import AnnotationBlock, WorkerState
from livenotes.session import Session


class AnnotationWorker:
    """Explicit idle/draining state of the queue consumer."""

    def __init__(self):
        self.state = WorkerState.IDLE
        self.current: Optional[AnnotationBlock] = None

    @property
    def is_idle(self) -> bool:
        return self.state is WorkerState.IDLE

    def begin(self, block: AnnotationBlock) -> None:
        if self.state is WorkerState.DRAINING:
            raise RuntimeError(
                f"Worker is still draining block {self.current.id}, cannot start block {block.id}"
            )
        self.state = WorkerState.DRAINING
        self.current = block

    def finish(self) -> None:
        self.state = WorkerState.IDLE
        self.current = None


class AnnotationQueue:
    """FIFO of completed blocks drained by one worker task."""

    def __init__(self, session: Session, text_service: TextService, context: str):
        self.session = session
        self.text_service = text_service
        self.context = context
        self.worker = AnnotationWorker()
        self._queue: "asyncio.Queue[Tuple[int, AnnotationBlock]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Blocks waiting, not counting the one being drained."""
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, block: AnnotationBlock) -> None:
        """Append a completed block; never blocks."""
        self._queue.put_nowait((self.session.epoch, block))
        logger.debug(f"Queued block {block.id} ({self.pending} pending)")

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="annotation-worker")

    async def stop(self) -> None:
        """Cancel the worker task and drop anything still queued."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self.worker.finish()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued block has been processed."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Annotation queue not drained after {timeout}s ({self.pending} pending)")
            return False

    async def _run(self) -> None:
        while True:
            epoch, block = await self._queue.get()
            try:
                await self.process(epoch, block)
            except Exception:
                logger.exception(f"Annotation worker failed on block {block.id}")
            finally:
                self._queue.task_done()

    async def process(self, epoch: int, block: AnnotationBlock) -> str:
        """
        Stream the annotation for one block into the session.

        Returns the text accumulated. A failed stream leaves whatever was
        already published in place.
        """
        if not self.session.is_current(epoch):
            logger.debug(f"Skipping block {block.id} from stale epoch {epoch}")
            return ""

        self.worker.begin(block)
        start_time = time.time()
        running = ""
        # Empty placeholder while the first fragment is pending
        self.session.publish_blocks(epoch, self.session.blocks.with_annotation(block.id, running))
        stream = self.text_service.generate(self.context, block.text)
        try:
            async for fragment in stream:
                if not self.session.is_current(epoch):
                    logger.debug(f"Abandoning annotation for block {block.id}: session reset")
                    break
                running += fragment
                self.session.publish_blocks(
                    epoch, self.session.blocks.with_annotation(block.id, running)
                )
            else:
                logger.info({
                    "event": "annotation_finished",
                    "block_id": block.id,
                    "chars": len(running),
                    "elapsed": round(time.time() - start_time, 3),
                })
        except Exception as e:
            logger.warning(f"Annotation for block {block.id} failed after {len(running)} chars: {e}")
        finally:
            try:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            finally:
                self.worker.finish()
        return running
