"""
Shared test fixtures and fakes.

Provides a scripted text service, an in-memory line source and a minimal
async Redis stand-in so the pipelines can be exercised without any network.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from livenotes.config import AppConfig, PipelineConfig, StorageConfig
from livenotes.exceptions import StreamInterrupted
from livenotes.models import Line
from livenotes.session import Session

SAMPLE_NOTE_RESPONSE = (
    "Lecture Topic:\nX\n\n"
    "Key Concepts:\n- a\n- b\n\n"
    "Bullet Notes:\n- c\n\n"
    "Important Definitions:\n→ t1: d1\n\n"
    "Questions to Explore:\n❓ q1\n\n"
    "Summary:\nS"
)


@dataclass
class Script:
    """One scripted response of the fake text service."""

    fragments: Sequence[str]
    fail_after: Optional[int] = None  # raise after yielding this many fragments
    pause_before: Optional[int] = None  # wait on ``gate`` before this fragment
    gate: Optional[asyncio.Event] = None
    delay: float = 0.0


class FakeTextService:
    """Text service that replays scripted fragment streams."""

    def __init__(self, *scripts: Script, default: Sequence[str] = ("ok",),
                 router: Optional[Callable[[str, str], Optional[Script]]] = None,
                 on_call: Optional[Callable[[str, str], None]] = None):
        self.scripts: List[Script] = list(scripts)
        self.default = default
        self.router = router
        self.on_call = on_call
        self.calls: List[tuple] = []
        self.active = 0
        self.max_active = 0
        self.closed = 0

    def _next_script(self, context: str, content: str) -> Script:
        if self.router is not None:
            routed = self.router(context, content)
            if routed is not None:
                return routed
        if self.scripts:
            return self.scripts.pop(0)
        return Script(self.default)

    async def generate(self, context: str, content: str):
        script = self._next_script(context, content)
        self.calls.append((context, content))
        if self.on_call is not None:
            self.on_call(context, content)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        received = ""
        try:
            for i, fragment in enumerate(script.fragments):
                if script.fail_after is not None and i >= script.fail_after:
                    raise StreamInterrupted(received, RuntimeError("connection reset"))
                if script.gate is not None and script.pause_before == i:
                    await script.gate.wait()
                await asyncio.sleep(script.delay)
                received += fragment
                yield fragment
            if script.fail_after is not None and script.fail_after >= len(script.fragments):
                raise StreamInterrupted(received, RuntimeError("connection reset"))
        finally:
            self.active -= 1
            self.closed += 1


class FakeLineSource:
    """Line source fed by the test."""

    def __init__(self, lines: Sequence[str] = (), fail_start: bool = False):
        self.pending: List[str] = list(lines)
        self.fail_start = fail_start
        self.started = 0
        self.stopped = 0
        self.resets = 0
        self.poll_error: Optional[Exception] = None
        self._seen = set()

    def push(self, *texts: str) -> None:
        self.pending.extend(texts)

    async def start(self) -> None:
        from livenotes.exceptions import SourceUnavailable

        if self.fail_start:
            raise SourceUnavailable("start", RuntimeError("refused"))
        self.started += 1

    async def stop(self) -> None:
        self.stopped += 1

    def reset(self) -> None:
        self.resets += 1
        self._seen.clear()

    async def poll(self) -> Optional[Line]:
        if self.poll_error is not None:
            raise self.poll_error
        while self.pending:
            text = self.pending.pop(0)
            if text not in self._seen:
                self._seen.add(text)
                return Line(text=text)
        return None


class FakeRedis:
    """The handful of redis.asyncio commands the store uses, kept in dicts."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.closed = False

    async def set(self, key, value):
        self.values[key] = value
        return True

    async def get(self, key):
        return self.values.get(key)

    async def mget(self, keys):
        return [self.values.get(k) for k in keys]

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
        return removed

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        before = len(items)
        self.lists[key] = [i for i in items if i != value]
        return before - len(self.lists[key])

    async def aclose(self):
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def session() -> Session:
    s = Session()
    s.reset()
    return s


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        pipeline=PipelineConfig(poll_interval=0.01, drain_timeout=5.0),
        storage=StorageConfig(backend="memory", retry_delay=0.0),
        user_id="user-1",
    )


@pytest.fixture
def note_router():
    """Route note requests to the sample response, annotations to the default."""

    def route(context: str, content: str) -> Optional[Script]:
        if "note-taking" in context:
            return Script([SAMPLE_NOTE_RESPONSE[:20], SAMPLE_NOTE_RESPONSE[20:]])
        return None

    return route
