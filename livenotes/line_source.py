"""
Line sources feeding transcribed text into a recording session.

A line source hands out each distinct line at most once per session. The
HTTP source talks to the speech-to-text service, which exposes the latest
transcription on ``GET /transcript`` and recording control on
``POST /start`` / ``POST /stop``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional, Protocol, Set

import requests
from loguru import logger

from livenotes.config import SourceConfig, get_config
from livenotes.exceptions import SourceUnavailable
from livenotes.models import Line


class LineSource(Protocol):
    """Supplier of de-duplicated, append-only transcript lines."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    def reset(self) -> None:
        ...

    async def poll(self) -> Optional[Line]:
        ...


class HttpLineSource:
    """Polls the transcription service over HTTP."""

    def __init__(self, config: Optional[SourceConfig] = None, http: Optional[requests.Session] = None):
        self.config = config or get_config().source
        self.http = http or requests.Session()
        self._seen: Set[str] = set()

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str) -> dict:
        response = self.http.request(method, self._url(path), timeout=self.config.timeout)
        response.raise_for_status()
        return response.json() or {}

    async def _call(self, operation: str, method: str, path: str) -> dict:
        try:
            return await asyncio.to_thread(self._request, method, path)
        except (requests.RequestException, ValueError) as e:
            raise SourceUnavailable(operation, e) from e

    async def start(self) -> None:
        data = await self._call("start", "POST", "/start")
        if data.get("status") != "started":
            raise SourceUnavailable("start", RuntimeError(f"unexpected status: {data.get('status')!r}"))
        logger.info(f"Transcription started at {self.config.base_url}")

    async def stop(self) -> None:
        data = await self._call("stop", "POST", "/stop")
        if data.get("status") != "stopped":
            logger.warning(f"Transcription service answered stop with status {data.get('status')!r}")

    def reset(self) -> None:
        """Forget seen lines; called when a new recording starts."""
        self._seen.clear()

    async def poll(self) -> Optional[Line]:
        data = await self._call("poll", "GET", "/transcript")
        text = data.get("transcript")
        if not isinstance(text, str) or not text.strip() or text in self._seen:
            return None
        self._seen.add(text)
        return Line(text=text)


class FileLineSource:
    """Replays a transcript file, one non-empty line per poll."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lines: List[str] = []
        self._cursor = 0
        self._seen: Set[str] = set()

    async def start(self) -> None:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise SourceUnavailable("start", e) from e
        self._lines = [ln.strip() for ln in content.splitlines() if ln.strip()]
        self._cursor = 0
        logger.info(f"Replaying {len(self._lines)} lines from {self.path}")

    async def stop(self) -> None:
        pass

    def reset(self) -> None:
        self._seen.clear()

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._lines)

    async def poll(self) -> Optional[Line]:
        while not self.exhausted:
            text = self._lines[self._cursor]
            self._cursor += 1
            if text not in self._seen:
                self._seen.add(text)
                return Line(text=text)
        return None
