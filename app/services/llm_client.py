"""
Thin async client for OpenAI-compatible chat completion endpoints.

Every queue talks to the model through this class so timeouts, response
cleanup and error classification live in one place.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional
from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings

logger = logging.getLogger(__name__)

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)


class LLMError(Exception):
    """Transport failure, HTTP error, timeout or empty completion"""
    pass


class LLMResponseError(LLMError):
    """The model answered, but not with parseable JSON"""
    pass


def clean_completion(content: str) -> str:
    """
    Strip reasoning blocks and markdown fences some models wrap JSON in.
    """
    stripped = _THINK_BLOCK.sub("", content)
    fenced = _FENCED_BLOCK.search(stripped)
    if fenced:
        return fenced.group(1).strip()
    return stripped.strip()


def parse_json_completion(content: str) -> Dict[str, Any]:
    """Parse a cleaned completion into a JSON object"""
    try:
        data = json.loads(clean_completion(content))
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Model returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise LLMResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class LLMClient:
    """
    Async chat-completion client.

    Args:
        api_key: Provider key (defaults to OPENAI_API_KEY)
        base_url: Any OpenAI-compatible endpoint (defaults to OPENAI_BASE_URL)
        model: Model name (defaults to OPENAI_MODEL)
        timeout: Per-call hard timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = settings.LLM_TIMEOUT_SECONDS,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout
        self._client = AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY or "not-configured",
            base_url=base_url or settings.OPENAI_BASE_URL,
            max_retries=0,
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Run one chat completion and return the raw message text.

        Raises:
            LLMError: On transport/HTTP failure, timeout or empty content
        """
        limit = timeout or self.timeout
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=temperature,
                ),
                timeout=limit,
            )
        except asyncio.TimeoutError:
            raise LLMError(f"LLM request timed out after {limit:.0f}s")
        except OpenAIError as e:
            raise LLMError(f"LLM request failed: {e}")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError("Empty response from LLM")
        return content

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Run one chat completion and parse the answer as a JSON object.

        Raises:
            LLMError: On transport/HTTP failure, timeout or empty content
            LLMResponseError: If the content is not a JSON object
        """
        content = await self.complete(system_prompt, user_prompt, temperature=temperature, timeout=timeout)
        return parse_json_completion(content)


_default_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Process-wide client, created on first use"""
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client
