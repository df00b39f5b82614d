from __future__ import annotations

import asyncio
import json
import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Sequence

import aiohttp
from google import genai
from google.genai import errors as genai_errors

from .config import Settings, require_api_key
from .errors import ExtractionError, TransportError
from .prompts import ChatMessage

logger = logging.getLogger(__name__)

_OBJECT = re.compile(r"\{[\s\S]*\}")


def sse_data(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, None for anything else."""
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


def delta_text(data: str) -> str | None:
    """Extract ``choices[0].delta.content`` from one streamed event."""
    try:
        parsed = json.loads(data)
    except ValueError:
        logger.warning("llm_stream: malformed event skipped data=%r", data[:200])
        return None
    try:
        content = parsed["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if not isinstance(content, str) or not content:
        return None
    return content


def parse_json_object(text: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except ValueError:
        match = _OBJECT.search(text or "")
        if not match:
            raise ExtractionError("Response is not a JSON object", raw=text)
        try:
            value = json.loads(match.group(0))
        except ValueError as exc:
            raise ExtractionError(f"Invalid JSON object in response: {exc}", raw=text) from exc
    if not isinstance(value, dict):
        raise ExtractionError("Response is not a JSON object", raw=text)
    return value


class LLMClient:
    provider = ""
    model = ""

    async def complete(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> str:
        raise NotImplementedError

    def stream(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> AsyncIterator[str]:
        raise NotImplementedError

    async def complete_json(self, messages: Sequence[ChatMessage]) -> dict[str, Any]:
        text = await self.complete(messages, json_mode=True)
        return parse_json_object(text)


@dataclass
class ChatCompletionsClient(LLMClient):
    """OpenAI-style ``/chat/completions`` endpoint (DeepSeek by default)."""

    base_url: str = "https://api.deepseek.com/v1"
    model: str = "deepseek-chat"
    temperature: float = 0.7
    max_tokens: int = 8000
    timeout: float = 120.0
    provider: str = "deepseek"
    session: aiohttp.ClientSession | None = None

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @asynccontextmanager
    async def _session(self):
        if self.session is not None:
            yield self.session
            return
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield session

    def _headers(self) -> dict[str, str]:
        api_key = require_api_key(self.provider)
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def _payload(self, messages: Sequence[ChatMessage], *, json_mode: bool, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.as_dict() for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if stream:
            payload["stream"] = True
        return payload

    @staticmethod
    def _check_status(resp: aiohttp.ClientResponse) -> None:
        if resp.status >= 400:
            raise TransportError(resp.reason or "", status=resp.status)

    async def complete(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> str:
        headers = self._headers()
        payload = self._payload(messages, json_mode=json_mode, stream=False)
        logger.info(
            "llm_usage: complete model=%s messages=%s json_mode=%s",
            self.model,
            len(messages),
            json_mode,
        )
        try:
            async with self._session() as session:
                async with session.post(self.url, json=payload, headers=headers) as resp:
                    self._check_status(resp)
                    body = await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        except asyncio.TimeoutError as exc:
            raise TransportError("request timed out") from exc
        except ValueError as exc:
            raise TransportError(f"invalid response body: {exc}") from exc
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            raise TransportError("No response body received")
        return content

    async def stream(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> AsyncIterator[str]:
        headers = self._headers()
        payload = self._payload(messages, json_mode=json_mode, stream=True)
        logger.info(
            "llm_usage: stream model=%s messages=%s json_mode=%s",
            self.model,
            len(messages),
            json_mode,
        )
        saw_data = False
        try:
            async with self._session() as session:
                async with session.post(self.url, json=payload, headers=headers) as resp:
                    self._check_status(resp)
                    async for raw_line in resp.content:
                        data = sse_data(raw_line.decode("utf-8", errors="replace"))
                        if data is None:
                            continue
                        saw_data = True
                        if data == "[DONE]":
                            break
                        text = delta_text(data)
                        if text:
                            yield text
        except aiohttp.ClientError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        except asyncio.TimeoutError as exc:
            raise TransportError("request timed out") from exc
        if not saw_data:
            raise TransportError("No response body received")


@dataclass
class GeminiClient(LLMClient):
    model: str = "gemini-3-flash-preview"
    temperature: float = 0.7
    max_tokens: int = 8000
    provider: str = "gemini"

    def _client(self) -> genai.Client:
        return genai.Client(api_key=require_api_key(self.provider))

    def _request(self, messages: Sequence[ChatMessage], *, json_mode: bool) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        contents = [
            genai.types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[genai.types.Part(text=m.content)],
            )
            for m in messages
            if m.role != "system"
        ]
        config = genai.types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            response_mime_type="application/json" if json_mode else None,
        )
        return {"model": self.model, "contents": contents, "config": config}

    async def complete(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> str:
        client = self._client()
        request = self._request(messages, json_mode=json_mode)
        logger.info(
            "llm_usage: complete model=%s messages=%s json_mode=%s",
            self.model,
            len(messages),
            json_mode,
        )
        try:
            resp = await client.aio.models.generate_content(**request)
        except genai_errors.APIError as exc:
            raise TransportError(exc.message or str(exc), status=exc.code) from exc
        text = (resp.text or "").strip()
        if not text:
            raise TransportError("No response body received")
        return text

    async def stream(self, messages: Sequence[ChatMessage], *, json_mode: bool = False) -> AsyncIterator[str]:
        client = self._client()
        request = self._request(messages, json_mode=json_mode)
        logger.info(
            "llm_usage: stream model=%s messages=%s json_mode=%s",
            self.model,
            len(messages),
            json_mode,
        )
        try:
            async for chunk in await client.aio.models.generate_content_stream(**request):
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as exc:
            raise TransportError(exc.message or str(exc), status=exc.code) from exc


def build_llm(settings: Settings) -> LLMClient:
    if settings.llm_provider == "gemini":
        return GeminiClient(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    return ChatCompletionsClient(
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
        provider=settings.llm_provider,
    )
