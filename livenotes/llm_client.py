"""
Streaming LLM client for OpenAI-compatible chat completion APIs.
"""

import asyncio
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from loguru import logger

from livenotes.config import LLMConfig, get_config
from livenotes.exceptions import StreamInterrupted

# Errors worth retrying before the first fragment arrives
RETRYABLE_ERRORS = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
    asyncio.TimeoutError,
)


class TextService(Protocol):
    """Anything that turns (context, content) into an ordered stream of text fragments."""

    def generate(self, context: str, content: str) -> AsyncIterator[str]:
        ...


class LLMClient:
    """Client for streaming completions from OpenAI's API."""

    def __init__(self, config: Optional[LLMConfig] = None, client: Optional[AsyncOpenAI] = None):
        """Initialize the LLM client."""
        self.config = config or get_config().llm
        self._async_client = client
        logger.info(f"Initialized LLM client with model: {self.config.model}")

    @property
    def async_client(self) -> AsyncOpenAI:
        # Created lazily so the app can boot without an API key
        if self._async_client is None:
            self._async_client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._async_client

    def _build_messages(self, context: str, content: str) -> List[Dict[str, str]]:
        messages = []
        if context:
            messages.append({"role": "system", "content": context})
        messages.append({"role": "user", "content": content})
        return messages

    async def _open_stream(self, messages: List[Dict[str, str]], **kwargs):
        """Open a completion stream, retrying transient failures with backoff."""
        call_params: Dict[str, Any] = {
            'model': kwargs.get('model', self.config.model),
            'messages': messages,
            'temperature': kwargs.get('temperature', self.config.temperature),
            'max_tokens': kwargs.get('max_tokens', self.config.max_tokens),
            'stream': True,
        }

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=self.config.retry_delay, min=self.config.retry_delay, max=30),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying stream open (attempt {attempt.retry_state.attempt_number})")
                try:
                    return await asyncio.wait_for(
                        self.async_client.chat.completions.create(**call_params),
                        timeout=self.config.timeout,
                    )
                except Exception as e:
                    logger.error(f"API call failed: {str(e)}")
                    raise

    @staticmethod
    def _chunk_text(chunk) -> str:
        choices = getattr(chunk, "choices", None)
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        return getattr(delta, "content", None) or ""

    async def generate(self, context: str, content: str, **kwargs) -> AsyncIterator[str]:
        """
        Stream the completion for ``content`` under ``context``.

        Yields text fragments in the order received. Stops when the caller
        stops consuming. Any error after the stream opened is raised as
        StreamInterrupted carrying the text received so far.
        """
        start_time = time.time()
        messages = self._build_messages(context, content)
        stream = await self._open_stream(messages, **kwargs)
        iterator = stream.__aiter__()
        received = ""
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        iterator.__anext__(), timeout=self.config.fragment_timeout
                    )
                except StopAsyncIteration:
                    break
                except Exception as e:
                    logger.warning(f"Stream interrupted after {len(received)} chars: {e}")
                    raise StreamInterrupted(received, e) from e
                fragment = self._chunk_text(chunk)
                if fragment:
                    received += fragment
                    yield fragment
        finally:
            await stream.close()

        elapsed_time = time.time() - start_time
        logger.debug(f"Stream completed in {elapsed_time:.2f}s, {len(received)} chars")

    async def complete(self, context: str, content: str, **kwargs) -> str:
        """Collect a whole streamed completion into one string."""
        parts: List[str] = []
        async for fragment in self.generate(context, content, **kwargs):
            parts.append(fragment)
        return "".join(parts)


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the global LLM client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient(get_config().llm)
    return _llm_client


def reset_llm_client():
    """Reset the global LLM client instance."""
    global _llm_client
    _llm_client = None
