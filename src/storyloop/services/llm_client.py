"""LLM client for OpenAI-compatible chat completion APIs."""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from storyloop.models.config import LLMConfig
from storyloop.utils.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout)


def _extract_delta_content(data: Dict[str, Any]) -> str | None:
    """
    Extract content from an OpenAI-style streaming chunk.

    Chunks look like {"choices": [{"delta": {"content": "..."}}]}.
    """
    try:
        return data["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ```json fences."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


class LLMClient:
    """
    HTTP client for an OpenAI-compatible API (OpenAI, Ollama's /v1, vLLM...).

    Retries connection failures and timeouts; HTTP status errors are raised
    immediately.
    """

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            config: LLM configuration (endpoint, API key, model)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.config = config
        self.timeout = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=10.0)
        self._transport = transport

    @property
    def url(self) -> str:
        return str(self.config.endpoint).rstrip("/") + "/chat/completions"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _payload(self, prompt: str, system_prompt: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "stream": stream,
            "temperature": self.config.temperature,
        }

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def complete_json(
        self,
        prompt: str,
        system_prompt: str,
        response_model: Type[T],
        max_retries: int = 1,
        retry_delay: float = 2.0,
        request_id: str = "unknown",
    ) -> T:
        """
        Request one JSON object and parse it into ``response_model``.

        Raises:
            httpx.HTTPError: On network or HTTP errors after retries exhausted
            ValueError: If the reply is not valid JSON for response_model
        """
        payload = self._payload(prompt, system_prompt, stream=False)
        logger.info("llm_request_started", request_id=request_id, model=self.config.model,
                    prompt_length=len(prompt), stream=False)
        logger.debug("llm_request_payload", request_id=request_id, payload=payload)

        attempt = 0
        while True:
            try:
                async with self._client() as client:
                    response = await client.post(self.url, json=payload, headers=self._headers)
                    response.raise_for_status()
                    body = response.json()
                break
            except RETRYABLE_ERRORS as e:
                attempt += 1
                if attempt > max_retries:
                    logger.error("llm_request_failed", request_id=request_id, attempts=attempt, error=str(e))
                    raise
                logger.warning("llm_request_retry", request_id=request_id, attempt=attempt,
                               max_retries=max_retries, error=str(e), retry_delay=retry_delay)
                await asyncio.sleep(retry_delay)
            except httpx.HTTPStatusError as e:
                logger.error("llm_http_error", request_id=request_id,
                             status_code=e.response.status_code, error=str(e))
                raise

        try:
            content = body["choices"][0]["message"]["content"]
            result = response_model(**json.loads(_strip_code_fence(content)))
        except (KeyError, IndexError, TypeError, json.JSONDecodeError, ValidationError) as e:
            logger.error("llm_response_invalid", request_id=request_id, error=str(e))
            raise ValueError(f"LLM reply could not be parsed as {response_model.__name__}: {e}") from e

        logger.info("llm_request_completed", request_id=request_id)
        return result

    async def stream_ndjson(
        self,
        prompt: str,
        system_prompt: str,
        chunk_model: Type[T],
        max_retries: int = 1,
        retry_delay: float = 2.0,
        request_id: str = "unknown",
    ) -> AsyncIterator[T]:
        """
        Stream a reply made of one JSON object per line.

        Handles both plain NDJSON bodies and SSE ("data: ...") bodies whose
        delta content carries the NDJSON text. Malformed lines are logged and
        skipped. Retries only happen before the first chunk is yielded.

        Yields:
            Parsed chunk_model instances

        Raises:
            httpx.HTTPError: On network or HTTP errors after retries exhausted
        """
        payload = self._payload(prompt, system_prompt, stream=True)
        logger.info("llm_request_started", request_id=request_id, model=self.config.model,
                    prompt_length=len(prompt), stream=True)

        attempt = 0
        chunk_count = 0
        while True:
            try:
                async with self._client() as client:
                    async with client.stream("POST", self.url, json=payload, headers=self._headers) as response:
                        response.raise_for_status()
                        buffer = ""

                        async for line in response.aiter_lines():
                            if not line.strip():
                                continue

                            if line.startswith("data: "):
                                data_line = line[6:]
                                if data_line == "[DONE]":
                                    continue
                                try:
                                    fragment = _extract_delta_content(json.loads(data_line))
                                except json.JSONDecodeError as e:
                                    logger.error("llm_malformed_sse", request_id=request_id, line=line, error=str(e))
                                    continue
                                buffer += fragment or ""
                                *complete, buffer = buffer.split("\n")
                            else:
                                complete = [line]

                            for complete_line in complete:
                                chunk = self._parse_chunk(complete_line, chunk_model, request_id)
                                if chunk is not None:
                                    chunk_count += 1
                                    yield chunk

                        chunk = self._parse_chunk(buffer, chunk_model, request_id)
                        if chunk is not None:
                            chunk_count += 1
                            yield chunk

                logger.info("llm_request_completed", request_id=request_id, chunk_count=chunk_count)
                return

            except RETRYABLE_ERRORS as e:
                attempt += 1
                if chunk_count or attempt > max_retries:
                    logger.error("llm_request_failed", request_id=request_id, attempts=attempt, error=str(e))
                    raise
                logger.warning("llm_request_retry", request_id=request_id, attempt=attempt,
                               max_retries=max_retries, error=str(e), retry_delay=retry_delay)
                await asyncio.sleep(retry_delay)

            except httpx.HTTPStatusError as e:
                logger.error("llm_http_error", request_id=request_id,
                             status_code=e.response.status_code, error=str(e))
                raise

    @staticmethod
    def _parse_chunk(line: str, chunk_model: Type[T], request_id: str) -> Optional[T]:
        line = line.strip()
        if not line or line.startswith("```"):
            return None
        try:
            return chunk_model(**json.loads(line))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.debug("llm_chunk_parse_error", request_id=request_id, line=line, error=str(e))
            return None
