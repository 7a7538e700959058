"""
Text-generation providers.

``TextGenerationProvider`` takes role-tagged chat messages and a model id and
returns the generated text. ``OpenAIChatProvider`` speaks the OpenAI-compatible
``/chat/completions`` API (Groq by default) over a shared aiohttp
``ClientSession``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from blogify.errors import UpstreamFailure

logger = logging.getLogger(__name__)

ChatMessage = Dict[str, str]


class TextGenerationProvider(ABC):
    @abstractmethod
    async def complete(self, messages: List[ChatMessage], model: str) -> str:
        pass

    async def stream(
        self, messages: List[ChatMessage], model: str
    ) -> AsyncIterator[str]:
        """Yield the response in chunks. The default yields one chunk."""
        yield await self.complete(messages, model)


class OpenAIChatProvider(TextGenerationProvider):
    def __init__(
        self,
        http_session: ClientSession,
        base_url: str,
        api_key: Optional[str],
        timeout_seconds: float = 60,
    ) -> None:
        self.http_session = http_session
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = ClientTimeout(total=timeout_seconds)

    async def complete(self, messages: List[ChatMessage], model: str) -> str:
        if not self.api_key:
            raise UpstreamFailure.text_generation("no API key configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {"model": model, "messages": messages}

        try:
            async with self.http_session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning(
                        "chat completion failed with %s: %s", resp.status, body[:200]
                    )
                    raise UpstreamFailure.text_generation(
                        f"provider returned {resp.status}", resp.status
                    )
                body = await resp.json(content_type=None)
        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamFailure.text_generation(str(e) or type(e).__name__) from e

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamFailure.text_generation("malformed completion response") from e

        if not isinstance(content, str):
            raise UpstreamFailure.text_generation("completion has no text content")
        return content
